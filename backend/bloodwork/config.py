"""Application configuration using pydantic-settings."""

import warnings
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


# Find .env file: check backend dir first, then project root
_BACKEND_DIR = Path(__file__).parent.parent
_PROJECT_ROOT = _BACKEND_DIR.parent
_ENV_FILE = _BACKEND_DIR / ".env" if (_BACKEND_DIR / ".env").exists() else _PROJECT_ROOT / ".env"

# Built-in reference catalog shipped with the package
BUILTIN_REFERENCE_PATH = Path(__file__).parent / "data" / "reference_values.json"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    The per-user JSON store and the reference override file both live under
    ``data_dir``. The built-in catalog is read-only and is never written.
    """

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    data_dir: str = "./data"
    builtin_reference_path: str = str(BUILTIN_REFERENCE_PATH)

    # Authorization
    admin_user_ids: str = ""
    dev_auto_login_user: str = ""

    # OpenAI (AI doctor + scan import)
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    ai_daily_limit: int = 50

    # Status classification
    warning_buffer_ratio: float = 0.10

    # CORS
    cors_origins: str = "http://localhost:5173"

    # Application
    log_level: str = "info"
    debug: bool = False

    @property
    def admin_ids(self) -> frozenset[str]:
        """Parsed set of user ids allowed to edit the reference catalog."""
        return frozenset(uid.strip() for uid in self.admin_user_ids.split(",") if uid.strip())

    def model_post_init(self, __context) -> None:
        """Warn about development-only settings."""
        if self.dev_auto_login_user:
            warnings.warn(
                "DEV_AUTO_LOGIN_USER is set! Unauthenticated requests act as "
                f"'{self.dev_auto_login_user}'. Never enable this in production.",
                UserWarning,
                stacklevel=2,
            )


settings = Settings()
