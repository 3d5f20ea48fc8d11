import pytest


@pytest.fixture(autouse=True)
def strict_by_default(monkeypatch):
    """Run every test with the default strictness, whatever the shell exports."""
    monkeypatch.delenv("FLEXIFUNC_STRICT", raising=False)


@pytest.fixture(autouse=True)
def use_asyncio_debug(monkeypatch):
    # reports variants that are called but never awaited
    monkeypatch.setenv("PYTHONASYNCIODEBUG", "1")
