import os
import pathlib
import sys
import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import codex`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

CURATOR = "0x" + "a1" * 20
NOMINEE = "0x" + "b2" * 20
OUTSIDER = "0x" + "c3" * 20


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: slow correctness tests (skipped unless CODEX_RUN_SLOW=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_slow = _env_flag('CODEX_RUN_SLOW')

    for item in items:
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set CODEX_RUN_SLOW=1 to enable'))


@pytest.fixture
def entry_fields():
    """Keyword arguments for a minimal valid entry."""
    return dict(
        title="The Lighthouse Keeper",
        source="manuscript",
        timestamp1="2024-01-01",
        timestamp2="",
        curator_note="first draft",
        permaweb_link="ar://abc",
        license="CC-BY-4.0",
    )


@pytest.fixture
def ledger():
    from codex.ledger import Ledger

    return Ledger(CURATOR)


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch):
    """Fresh configuration singleton with no CODEX_* overrides."""
    from codex.config import ConfigManager

    for name in list(os.environ):
        if name.startswith("CODEX_"):
            monkeypatch.delenv(name, raising=False)
    ConfigManager.reset_instance()
    yield
    ConfigManager.reset_instance()


@pytest.fixture(autouse=True)
def _isolated_logging():
    """Undo handler and level changes made by configure_logging()."""
    import logging

    root = logging.getLogger("codex")
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
