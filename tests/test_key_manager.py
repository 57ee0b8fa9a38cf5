from __future__ import annotations

import pytest

from execution.errors import AuthError, SigningFailed, SigningIdentityUnavailable
from integration.key_manager import SigningIdentity, load_signing_identity, validate_key_exists
from tests.conftest import ALICE, TEST_ADDRESS, TEST_PRIVATE_KEY


def test_from_key_derives_checksummed_address():
    identity = SigningIdentity.from_key(TEST_PRIVATE_KEY)

    assert identity.address == TEST_ADDRESS


def test_key_without_prefix_accepted():
    identity = SigningIdentity.from_key(TEST_PRIVATE_KEY[2:])

    assert identity.address == TEST_ADDRESS


@pytest.mark.parametrize("key", ["", "   ", "0x1234", "not-a-hex-key"])
def test_invalid_key_is_unavailable(key):
    with pytest.raises(SigningIdentityUnavailable) as exc:
        SigningIdentity.from_key(key)

    assert isinstance(exc.value, AuthError)


def test_invalid_key_is_not_echoed():
    bad = "0x" + "zz" * 32

    with pytest.raises(SigningIdentityUnavailable) as exc:
        SigningIdentity.from_key(bad)

    assert bad not in str(exc.value)


def test_repr_redacts_key(identity):
    text = repr(identity)

    assert TEST_ADDRESS in text
    assert TEST_PRIVATE_KEY[2:] not in text


def test_load_from_environment():
    identity = load_signing_identity(environ={"PRIVATE_KEY": TEST_PRIVATE_KEY})

    assert identity.address == TEST_ADDRESS


def test_load_missing_variable():
    with pytest.raises(SigningIdentityUnavailable, match="PRIVATE_KEY"):
        load_signing_identity(environ={})


def test_validate_key_exists():
    assert validate_key_exists(environ={"PRIVATE_KEY": TEST_PRIVATE_KEY})
    assert not validate_key_exists(environ={})
    assert not validate_key_exists(environ={"PRIVATE_KEY": "0x00"})


def test_incomplete_transaction_fails_to_sign(identity):
    with pytest.raises(SigningFailed):
        identity.sign_transaction({"to": ALICE})
