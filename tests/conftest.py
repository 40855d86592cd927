import pytest

from pki_auth.keys import KeyPair


@pytest.fixture(scope="session")
def key_pair():
    return KeyPair()


@pytest.fixture(scope="session")
def peer_key_pair():
    return KeyPair()


@pytest.fixture(scope="session")
def rotated_key_pair():
    # Stands in for the peer after it restarted with a new key
    return KeyPair()
