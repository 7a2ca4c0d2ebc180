"""
Pytest fixtures for the reconciliation test suite.

Provides:
- Structured log capture
- Deterministic clock
- In-memory SQLite document store (per test)
- Export-directory builder and a small consistent export snapshot

Environment Variables:
- DATABASE_URL: optional target store URL. Defaults to in-memory SQLite.
"""

import json
import logging
import os
from io import StringIO
from pathlib import Path
from typing import Any, Callable, Generator

import pytest
from sqlalchemy.orm import Session

from media_config import PipelineConfig
from media_kernel.clock import DeterministicClock
from media_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from media_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from media_ingestion.loaders.store import SqlDocumentStore


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture media_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, pipeline):
            pipeline.run(...)
            logs = captured_logs()
            assert any(r["message"] == "run_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("media_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Clock and config
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """2025-07-01 12:00 UTC until advanced."""
    return DeterministicClock()


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    return PipelineConfig()


# =============================================================================
# Document store
# =============================================================================


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", "sqlite:///:memory:")


@pytest.fixture
def db_engine():
    """Fresh engine and schema per test."""
    engine = init_engine_from_url(get_database_url())
    create_tables()
    yield engine
    drop_tables()
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    session = get_session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def store(session) -> SqlDocumentStore:
    return SqlDocumentStore(session)


# =============================================================================
# Export snapshots
# =============================================================================


def write_export(directory: Path, sources: dict[str, Any]) -> Path:
    """Write each source set as ``<name>.json``. A value of None writes nothing."""
    directory.mkdir(parents=True, exist_ok=True)
    for name, rows in sources.items():
        if rows is None:
            continue
        path = directory / f"{name}.json"
        if isinstance(rows, str):
            path.write_text(rows, encoding="utf-8")
        else:
            path.write_text(json.dumps(rows), encoding="utf-8")
    return directory


def sample_sources() -> dict[str, list[dict[str, Any]]]:
    """
    One account, four users, one campaign with two strategies, two line
    items, one media buy linked to the first line item.

    Line item 300 (strategy 200) is traded by users 10 and 11; line item 301
    (strategy 201) by users 11 and 12. The campaign's trader set is therefore
    {Z10, Z11, Z12}.
    """
    return {
        "accounts": [
            {
                "id": 1,
                "name": "Acme Co",
                "referral_percentage": "5",
                "agency_markup_percentage": "12.5",
                "primary_contact_email": "Buyer@Acme.example",
                "city": "Austin",
                "state": "TX",
            },
        ],
        "users": [
            {"id": 10, "zoho_user_id": "Z10", "name": "Alice Adams", "email": "Alice@Example.com",
             "role": "Media Trader", "is_active": True, "is_confirmed": True},
            {"id": 11, "zoho_user_id": "Z11", "name": "Bob Brown", "email": "bob@example.com",
             "role": "Senior Media Trader", "is_active": True, "is_confirmed": True},
            {"id": 12, "zoho_user_id": "Z12", "name": "Cara Cole", "email": "cara@example.com",
             "role": "Media Trader", "is_active": True, "is_confirmed": False},
            {"id": 13, "zoho_user_id": "Z13", "name": "Dana Diaz", "email": "dana@example.com",
             "role": "Account Manager", "is_active": True, "is_confirmed": True},
        ],
        "campaigns": [
            {
                "id": 100,
                "account_id": 1,
                "campaign_number": "CN-100",
                "campaign_name": "Spring Launch",
                "stage": "Live",
                "flight_date": "2025-06-01",
                "end_date": "2025-08-30",
                "budget": "50000.00",
                "expected_revenue": "60000",
                "lead_account_owner_user_id": 13,
            },
        ],
        "strategies": [
            {"id": 200, "campaign_id": 100, "name": "Search", "status": "Approved",
             "start_date": "2025-06-01", "end_date": "2025-08-30", "budget": "20000", "margin": "25"},
            {"id": 201, "campaign_id": 100, "name": "Social", "status": "Approved",
             "start_date": "2025-06-01", "end_date": "2025-08-30", "budget": "15000"},
        ],
        "line_items": [
            {"id": 300, "strategy_id": 200, "campaign_id": 100, "name": "Google Search",
             "line_item_type": "Standard", "price": "12000.00", "target_margin": "25",
             "platform": "Google Ads", "media_type": "Search", "start_date": "2025-06-01",
             "end_date": "2025-08-30", "media_trader_user_ids": [10, 11]},
            {"id": 301, "strategy_id": 201, "campaign_id": 100, "name": "Meta Social",
             "line_item_type": "Standard", "price": "8000", "platform": "Facebook",
             "media_type": "Social", "start_date": "2025-06-01", "end_date": "2025-08-30",
             "media_trader_user_ids": "{11,12}"},
        ],
        "media_buys": [
            {"id": 400, "name": "Google June", "media_platform_id": 1, "budget": "5000",
             "spend": "1000", "start_date": "2025-06-01", "end_date": "2025-07-31"},
        ],
        "line_item_media_buys": [
            {"id": 1, "line_item_id": 300, "media_buy_id": 400, "allocation_percentage": "100"},
        ],
        "media_platforms": [
            {"id": 1, "name": "Google Ads", "platform_type": "search"},
        ],
    }


@pytest.fixture
def make_export(tmp_path) -> Callable[..., Path]:
    """
    Factory: write an export directory from the sample snapshot.

    Keyword arguments replace whole source sets; pass None to omit a file.
    """
    counter = {"n": 0}

    def _make(**overrides: Any) -> Path:
        counter["n"] += 1
        sources: dict[str, Any] = sample_sources()
        sources.update(overrides)
        return write_export(tmp_path / f"export_{counter['n']}", sources)

    return _make
