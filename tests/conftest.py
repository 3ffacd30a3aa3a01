import pytest
import structlog


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Keep structlog config set by one test (e.g. CLI runs) from leaking a closed stream into the next."""
    yield
    structlog.reset_defaults()
