"""Per-user JSON file store.

Layout under ``data_dir``::

    users/<safe user id>/bloodvalues.json   UserData
    users/<safe user id>/chat_history.json  ChatHistory (last 100 messages)
    api_tokens.json                         {sha256(token): user_id}
    shares_index.json                       {recipient email: [ShareIndexEntry]}
    ai_rate_limits.json                     {user_id: {count, reset_at}}

Reads of missing or corrupt files return defaults. Writes are atomic and
serialised by a process-wide lock.
"""

import hashlib
import logging
import re
import secrets
import threading
import uuid
from datetime import datetime, time as dt_time, timezone
from functools import lru_cache
from pathlib import Path

from bloodwork.config import settings
from bloodwork.schemas.ai import ChatHistory, ChatMessage
from bloodwork.schemas.user import ApiToken, ShareIndexEntry, UserData
from bloodwork.utils.json_files import read_json, read_model, write_json, write_model

logger = logging.getLogger(__name__)

MAX_CHAT_MESSAGES = 100
TOKEN_PREFIX = "bt_"
TOKEN_DISPLAY_PREFIX_LENGTH = 10

_UNSAFE_ID_CHARS = re.compile(r"[^a-zA-Z0-9_\-.@]")


def safe_user_id(user_id: str) -> str:
    """Sanitize a user id for use as a directory name (no path traversal)."""
    safe = _UNSAFE_ID_CHARS.sub("_", user_id)
    # "." and ".." survive the character filter but must never become path segments
    if set(safe) <= {"."}:
        safe = safe.replace(".", "_")
    return safe


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_token() -> str:
    """New personal API token secret."""
    return f"{TOKEN_PREFIX}{secrets.token_hex(32)}"


class FileStore:
    """File-backed persistence for user data, chat history, tokens and shares."""

    def __init__(self, data_dir: Path):
        self._data_dir = data_dir
        self._lock = threading.RLock()

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def _user_dir(self, user_id: str) -> Path:
        return self._data_dir / "users" / safe_user_id(user_id)

    # --- User data ---

    def get_user_data(self, user_id: str) -> UserData:
        """Load a user's data, or an empty record if none exists yet."""
        data = read_model(self._user_dir(user_id) / "bloodvalues.json", UserData)
        return data if data is not None else UserData(user_id=user_id)

    def save_user_data(self, data: UserData) -> None:
        with self._lock:
            write_model(self._user_dir(data.user_id) / "bloodvalues.json", data)

    def ensure_user_profile(self, user_id: str, display_name: str, email: str) -> UserData:
        """Create the user record on first sight; fill in missing name/email."""
        with self._lock:
            data = self.get_user_data(user_id)
            if not data.display_name or not data.email:
                data.display_name = data.display_name or display_name
                data.email = data.email or email
                self.save_user_data(data)
            return data

    def list_user_ids(self) -> list[str]:
        users_dir = self._data_dir / "users"
        if not users_dir.is_dir():
            return []
        return sorted(p.name for p in users_dir.iterdir() if p.is_dir())

    def find_user_by_email(self, email: str) -> UserData | None:
        """Case-insensitive scan over all users."""
        lower = email.lower()
        for dir_name in self.list_user_ids():
            data = read_model(self._data_dir / "users" / dir_name / "bloodvalues.json", UserData)
            if data is not None and data.email.lower() == lower:
                return data
        return None

    # --- Chat history ---

    def get_chat_history(self, user_id: str) -> ChatHistory:
        history = read_model(self._user_dir(user_id) / "chat_history.json", ChatHistory)
        return history if history is not None else ChatHistory(user_id=user_id)

    def save_chat_history(self, user_id: str, history: ChatHistory) -> None:
        """Persist history, keeping only the most recent messages."""
        if len(history.messages) > MAX_CHAT_MESSAGES:
            history = history.model_copy(update={"messages": history.messages[-MAX_CHAT_MESSAGES:]})
        with self._lock:
            write_model(self._user_dir(user_id) / "chat_history.json", history)

    def append_chat_messages(self, user_id: str, *messages: ChatMessage) -> None:
        with self._lock:
            history = self.get_chat_history(user_id)
            history.messages.extend(messages)
            self.save_chat_history(user_id, history)

    # --- AI rate limiting ---

    def check_and_increment_ai_rate(self, user_id: str, max_per_day: int) -> bool:
        """Count one AI request; False if the user hit today's limit.

        The counter resets at the end of the UTC calendar day.
        """
        path = self._data_dir / "ai_rate_limits.json"
        now = datetime.now(timezone.utc)
        with self._lock:
            records: dict = read_json(path, {})
            record = records.get(user_id)

            if not record or now.timestamp() > record.get("reset_at", 0):
                end_of_day = datetime.combine(now.date(), dt_time.max, tzinfo=timezone.utc)
                records[user_id] = {"count": 1, "reset_at": end_of_day.timestamp()}
                write_json(path, records)
                return True

            if record.get("count", 0) >= max_per_day:
                logger.warning("AI rate limit reached for user %s (%d/day)", user_id, max_per_day)
                return False

            record["count"] = record.get("count", 0) + 1
            write_json(path, records)
            return True

    # --- API token index ---

    def _token_index_path(self) -> Path:
        return self._data_dir / "api_tokens.json"

    def register_token(self, token_hash: str, user_id: str) -> None:
        with self._lock:
            index: dict = read_json(self._token_index_path(), {})
            index[token_hash] = user_id
            write_json(self._token_index_path(), index)

    def revoke_token(self, token_hash: str) -> None:
        with self._lock:
            index: dict = read_json(self._token_index_path(), {})
            if index.pop(token_hash, None) is not None:
                write_json(self._token_index_path(), index)

    def resolve_token(self, token: str) -> str | None:
        """Return the user id owning ``token``, or None."""
        index: dict = read_json(self._token_index_path(), {})
        return index.get(hash_token(token))

    def issue_api_token(self, user_id: str, name: str) -> tuple[ApiToken, str]:
        """Create a token for ``user_id`` and register its hash.

        Returns:
            The stored token record and the plaintext secret (shown once).
        """
        secret = generate_token()
        token = ApiToken(
            id=str(uuid.uuid4()),
            name=name,
            token_hash=hash_token(secret),
            token_prefix=secret[:TOKEN_DISPLAY_PREFIX_LENGTH],
            created_at=datetime.now(timezone.utc),
        )
        with self._lock:
            data = self.get_user_data(user_id)
            data.api_tokens.append(token)
            self.save_user_data(data)
            self.register_token(token.token_hash, user_id)
        logger.info("Issued API token %s for user %s", token.id, user_id)
        return token, secret

    # --- Shares index ---

    def get_shares_index(self) -> dict[str, list[ShareIndexEntry]]:
        raw: dict = read_json(self._data_dir / "shares_index.json", {})
        index: dict[str, list[ShareIndexEntry]] = {}
        for email, entries in raw.items():
            index[email] = [ShareIndexEntry.model_validate(e) for e in entries]
        return index

    def save_shares_index(self, index: dict[str, list[ShareIndexEntry]]) -> None:
        payload = {
            email: [entry.model_dump(mode="json") for entry in entries]
            for email, entries in index.items()
            if entries
        }
        with self._lock:
            write_json(self._data_dir / "shares_index.json", payload)


@lru_cache
def get_file_store() -> FileStore:
    """Process-wide store rooted at ``settings.data_dir`` (FastAPI dependency)."""
    return FileStore(Path(settings.data_dir))
