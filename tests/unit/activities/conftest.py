from unittest.mock import AsyncMock, MagicMock

import pytest
from temporalio.testing import ActivityEnvironment


@pytest.fixture
def activity_env():
    return ActivityEnvironment()


@pytest.fixture
def session():
    return AsyncMock()


@pytest.fixture
def session_maker(session):
    """Stand-in for ``async_session_maker`` yielding the ``session`` fixture."""
    maker = MagicMock()
    maker.return_value.__aenter__.return_value = session
    maker.return_value.__aexit__.return_value = False
    return maker
