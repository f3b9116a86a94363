import pytest

from tests.helpers import FakeChainClient


@pytest.fixture
def fake_client():
    return FakeChainClient()
