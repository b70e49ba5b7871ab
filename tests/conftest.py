import os
import pathlib
import sys
import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import keycache`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: slow correctness tests (skipped unless KEYCACHE_RUN_SLOW=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_slow = _env_flag('KEYCACHE_RUN_SLOW')

    for item in items:
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set KEYCACHE_RUN_SLOW=1 to enable'))


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch):
    """Each test starts from default configuration with no KEYCACHE_* overrides."""
    from keycache.config import get_config_manager

    for name in list(os.environ):
        if name.startswith('KEYCACHE_') and name != 'KEYCACHE_RUN_SLOW':
            monkeypatch.delenv(name, raising=False)

    mgr = get_config_manager()
    mgr.reset()
    yield
    mgr.reset()


@pytest.fixture(autouse=True)
def _isolated_logging():
    """Undo handlers installed by configure_logging() (the CLI installs one)."""
    import logging

    from keycache.observability import ROOT_LOGGER_NAME, StructuredHandler

    yield
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        if isinstance(handler, StructuredHandler):
            root.removeHandler(handler)
    root.setLevel(logging.NOTSET)
    root.propagate = True


@pytest.fixture
def registry():
    """A fresh registry per test."""
    from keycache.registry import ObserverRegistry

    return ObserverRegistry(name="test")
