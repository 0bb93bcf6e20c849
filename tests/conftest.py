"""Shared pytest configuration and fixtures."""

from collections.abc import Callable, Generator
from datetime import date
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from erp_engine.config import Settings, get_settings
from erp_engine.erp.client import ErpCredentials, OdooClient
from erp_engine.skills.base import Skill, SkillContext, SkillResult, TenantCredentials

ODOO_URL = "https://odoo.test"
TODAY = date(2026, 1, 14)


@pytest.fixture(autouse=True)
def _no_dotenv() -> Generator[None]:
    """Block .env loading so a developer's local ODOO_* values never leak into tests."""
    get_settings.cache_clear()
    original = Settings.model_config.get("env_file")
    Settings.model_config["env_file"] = None

    try:
        yield
    finally:
        Settings.model_config["env_file"] = original
        get_settings.cache_clear()


@pytest.fixture
def mock_settings() -> Generator[Any]:
    """Provide fake settings so tests don't need a .env file.

    Patches get_settings at every import site so cached references are overridden.
    """
    fake_settings = type(
        "FakeSettings",
        (),
        {
            "erp_timeout_seconds": 5.0,
            "erp_max_attempts": 3,
            "erp_retry_base_delay": 0.0,
            "erp_retry_max_delay": 0.0,
            "erp_max_clients": 100,
            "cache_ttl_seconds": 300.0,
            "cache_max_entries": 500,
            "timezone": "America/Argentina/Buenos_Aires",
            "default_locale": "es-AR",
            "log_level": "INFO",
            "api_host": "127.0.0.1",
            "api_port": 8000,
            "odoo_url": ODOO_URL,
            "odoo_db": "acme",
            "odoo_username": "bot@acme.test",
            "odoo_api_key": "test-api-key",
        },
    )()
    with (
        patch("erp_engine.config.get_settings", return_value=fake_settings),
        patch("erp_engine.engine.get_settings", return_value=fake_settings),
        patch("erp_engine.api.main.get_settings", return_value=fake_settings),
        patch("erp_engine.cli.get_settings", return_value=fake_settings),
    ):
        yield fake_settings


# ---------------------------------------------------------------------------
# Request context
# ---------------------------------------------------------------------------


@pytest.fixture
def credentials() -> ErpCredentials:
    return ErpCredentials(url=ODOO_URL, db="acme", username="bot@acme.test", api_key="test-api-key")


@pytest.fixture
def context(credentials: ErpCredentials) -> SkillContext:
    return SkillContext(user_id="u-1", tenant_id="acme", credentials=TenantCredentials(odoo=credentials))


@pytest.fixture
def anonymous_context() -> SkillContext:
    """Context whose tenant has no Odoo credentials."""
    return SkillContext(user_id="u-1", tenant_id="acme")


# ---------------------------------------------------------------------------
# Fake ERP for skill tests
# ---------------------------------------------------------------------------


@pytest.fixture
def erp() -> AsyncMock:
    """An OdooClient stand-in; tests set return_value/side_effect per method."""
    fake = AsyncMock(spec=OdooClient)
    fake.read_group.return_value = []
    fake.search_read.return_value = []
    fake.search_count.return_value = 0
    return fake


@pytest.fixture
def run_skill(erp: AsyncMock, context: SkillContext) -> Callable[..., Any]:
    """Execute a skill against the fake ERP with today = 2026-01-14."""

    async def _run(skill: Skill, payload: dict[str, Any] | None = None, today: date = TODAY) -> SkillResult:
        return await skill.execute(payload or {}, context, today=today, connect=lambda _ctx, _creds: erp)

    return _run
