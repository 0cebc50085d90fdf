"""Runtime requirements declared for the billing provider and database engine."""

import tomllib
from pathlib import Path

from plansync.core.config import Settings
from plansync.core.database import engine_options

PYPROJECT = Path(__file__).resolve().parent.parent / "pyproject.toml"


def _runtime_dependencies() -> list[str]:
    with PYPROJECT.open("rb") as fh:
        return tomllib.load(fh)["project"]["dependencies"]


def test_stripe_async_transport_is_a_runtime_dependency():
    deps = _runtime_dependencies()
    stripe_reqs = [d for d in deps if d.startswith("stripe")]
    assert stripe_reqs, deps
    assert stripe_reqs[0].startswith("stripe[async]")
    assert any(d.startswith("httpx") for d in deps)


def test_asyncpg_statements_are_bounded():
    options = engine_options(Settings(
        database_url="postgresql+asyncpg://u:p@db/plansync",
        database_statement_timeout=12.5,
    ))
    assert options["connect_args"] == {"command_timeout": 12.5}
    assert options["pool_timeout"] == Settings().database_pool_timeout


def test_other_drivers_get_no_asyncpg_arguments():
    options = engine_options(Settings(database_url="sqlite+aiosqlite://"))
    assert "connect_args" not in options
