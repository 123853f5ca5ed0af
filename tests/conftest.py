import pytest

from cpabe import cp_core


@pytest.fixture(scope="session")
def authority():
    """One (pub, msk) pair shared by the in-process tests; Setup is the slow part."""
    return cp_core.setup()


@pytest.fixture(scope="session")
def pub(authority):
    return authority[0]


@pytest.fixture(scope="session")
def msk(authority):
    return authority[1]
