import pytest

from tuirunes import Runtime


@pytest.fixture
def reported():
    """(exception, node) pairs isolated by the runtime during the test."""
    return []


@pytest.fixture(autouse=True)
def runtime(reported):
    """A fresh active runtime per test, collecting isolated errors."""
    rt = Runtime(lambda exc, node: reported.append((exc, node)), name="test")
    rt.activate()
    try:
        yield rt
    finally:
        rt.deactivate()
