"""Share password hashing and verification."""

import pytest
from passlib.exc import MissingBackendError

from sharegate import credentials
from sharegate.credentials import hash_share_password, verify_share_password
from sharegate.errors import InfrastructureFault, ValidationFault


def test_hash_roundtrip_accepts_only_the_original_password():
    stored = hash_share_password("open sesame")

    assert stored != "open sesame"
    assert verify_share_password("open sesame", stored) is True
    assert verify_share_password("open sesame!", stored) is False


def test_hash_uses_configured_cost():
    stored = hash_share_password("pw")
    # bcrypt encodes the cost factor after the ident, e.g. $2b$04$
    assert stored.split("$")[2] == "04"


def test_hash_is_salted():
    assert hash_share_password("same") != hash_share_password("same")


def test_empty_password_cannot_be_hashed():
    with pytest.raises(ValidationFault) as exc:
        hash_share_password("")
    assert exc.value.field == "password"


@pytest.mark.parametrize("plaintext, stored", [(None, "x"), ("", "x"), ("pw", None), ("pw", "")])
def test_missing_inputs_verify_false(plaintext, stored):
    assert verify_share_password(plaintext, stored) is False


def test_malformed_stored_hash_fails_closed(caplog):
    assert verify_share_password("secret", "not-a-bcrypt-hash") is False
    assert "secret" not in caplog.text


def test_legacy_plaintext_hash_is_not_accepted():
    # Old rows stored a reversible encoding; they must never verify
    assert verify_share_password("c2VjcmV0", "c2VjcmV0") is False


def test_missing_backend_is_an_infrastructure_fault(monkeypatch):
    class _Broken:
        def hash(self, *_):
            raise MissingBackendError("bcrypt")

        def verify(self, *_):
            raise MissingBackendError("bcrypt")

    monkeypatch.setattr(credentials, "_context", lambda: _Broken())

    with pytest.raises(InfrastructureFault) as exc:
        verify_share_password("pw", "$2b$04$abc")
    assert exc.value.component == "credentials"
    with pytest.raises(InfrastructureFault):
        hash_share_password("pw")
