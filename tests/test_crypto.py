import pytest

from app.hosting.crypto import CryptoError, decrypt, encrypt


def test_encrypt_decrypt():
    token = encrypt("hunter2", secret="k1")
    assert token != "hunter2"
    assert decrypt(token, secret="k1") == "hunter2"


def test_empty_values_pass_through():
    assert encrypt("", secret="k1") == ""
    assert encrypt(None, secret="k1") is None
    assert decrypt("", secret="k1") == ""


def test_wrong_key_raises():
    token = encrypt("hunter2", secret="k1")
    with pytest.raises(CryptoError):
        decrypt(token, secret="k2")
    with pytest.raises(CryptoError):
        decrypt("not-a-token", secret="k1")


def test_missing_key_raises():
    with pytest.raises(CryptoError):
        encrypt("hunter2", secret="")
