"""Pytest configuration and shared fixtures.

This module provides centralized test fixtures for:
- A temporary data directory and file store
- A reference catalog built from a small in-memory built-in catalog
- HTTP client for API testing with auth stubbed out
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from bloodwork.auth import verify_bearer_token
from bloodwork.config import settings
from bloodwork.main import app
from bloodwork.schemas.bloodvalues import BloodEntry, BloodValue
from bloodwork.schemas.reference import ReferenceDatabase, ReferenceValue
from bloodwork.services.catalog_store import OVERRIDES_FILENAME, ReferenceCatalog, get_catalog
from bloodwork.services.file_store import FileStore, get_file_store

TEST_USER_ID = "test-user"


async def stub_verify_bearer_token() -> str:
    """Stub auth dependency that returns a fixed test user ID."""
    return TEST_USER_ID


def make_ref(value_id: str, name: str, category: str = "Test", unit: str = "U/l", **fields) -> ReferenceValue:
    """Build a catalog entry with only the fields a test cares about."""
    return ReferenceValue(id=value_id, name=name, category=category, unit=unit, **fields)


def make_entry(entry_id: str, date: str, *values: tuple[str, float, str], lab_name: str | None = None) -> BloodEntry:
    """Build an entry from (name, value, unit) tuples."""
    return BloodEntry(
        id=entry_id,
        date=date,
        lab_name=lab_name,
        values=[BloodValue(name=n, value=v, unit=u, category="Test") for n, v, u in values],
    )


# =============================================================================
# Catalog Fixtures
# =============================================================================


@pytest.fixture
def builtin_db() -> ReferenceDatabase:
    """Small built-in catalog covering sex-specific, open-ended and critical bounds."""
    return ReferenceDatabase(
        version="1.0",
        updated="2026-01-01",
        values=[
            make_ref(
                "hb",
                "Hämoglobin",
                "Blutbild",
                short_name="Hb",
                aliases=["Hb", "Haemoglobin"],
                unit="g/dl",
                ref_min=12.0,
                ref_max=17.0,
                ref_min_female=12.0,
                ref_max_female=16.0,
                ref_min_male=13.5,
                ref_max_male=17.5,
                critical_low=7.0,
                critical_high=20.0,
            ),
            make_ref(
                "ferritin",
                "Ferritin",
                "Eisenstoffwechsel",
                unit="ng/ml",
                ref_min=30.0,
                ref_max=300.0,
                ref_min_female=15.0,
                ref_max_female=150.0,
            ),
            make_ref("hba1c", "HbA1c", "Stoffwechsel", unit="%", ref_max=5.7),
            make_ref("egfr", "eGFR", "Niere", aliases=["GFR"], unit="ml/min", ref_min=90.0),
            make_ref("crp", "CRP", "Entzündung", aliases=["C-reaktives Protein"], unit="mg/l", ref_max=5.0),
            make_ref("tsh", "TSH", "Schilddrüse", unit="mIU/l", ref_min=0.4, ref_max=4.0),
        ],
    )


@pytest.fixture
def data_dir(tmp_path):
    """Empty per-test data directory."""
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def overrides_path(data_dir):
    return data_dir / OVERRIDES_FILENAME


@pytest.fixture
def catalog(builtin_db, data_dir, overrides_path) -> ReferenceCatalog:
    """Catalog over the in-memory built-in layer with overrides in data_dir."""
    return ReferenceCatalog(
        builtin_path=data_dir / "unused-builtin.json",
        overrides_path=overrides_path,
        builtin=builtin_db,
    )


@pytest.fixture
def store(data_dir) -> FileStore:
    return FileStore(data_dir)


@pytest.fixture
def admin_user(monkeypatch):
    """Make the stubbed test user an admin."""
    monkeypatch.setattr(settings, "admin_user_ids", TEST_USER_ID)
    return TEST_USER_ID


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    """No admin users and no dev auto-login unless a test opts in."""
    monkeypatch.setattr(settings, "admin_user_ids", "")
    monkeypatch.setattr(settings, "dev_auto_login_user", "")
    monkeypatch.setattr(settings, "warning_buffer_ratio", 0.10)


# =============================================================================
# HTTP Client Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def client(catalog, store):
    """Async test client for the FastAPI app.

    Overrides the catalog and store dependencies with the per-test instances
    and authenticates every request as TEST_USER_ID.
    """
    app.dependency_overrides[get_catalog] = lambda: catalog
    app.dependency_overrides[get_file_store] = lambda: store
    app.dependency_overrides[verify_bearer_token] = stub_verify_bearer_token

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.pop(get_catalog, None)
    app.dependency_overrides.pop(get_file_store, None)
    app.dependency_overrides.pop(verify_bearer_token, None)


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Authentication headers for API requests."""
    return {"Authorization": "Bearer test-token"}
