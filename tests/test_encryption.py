import base64

import pytest

from utils.encryption import EncryptionNotConfigured, decrypt_secret, encrypt_secret


def test_encrypted_value_decrypts_with_same_key():
    token = encrypt_secret("consumer-secret", "short-key")

    assert token != "consumer-secret"
    assert decrypt_secret(token, "short-key") == "consumer-secret"


def test_each_encryption_uses_a_fresh_iv():
    assert encrypt_secret("same", "key") != encrypt_secret("same", "key")


def test_wrong_key_is_rejected():
    token = encrypt_secret("passkey", "key-one")

    with pytest.raises(ValueError):
        decrypt_secret(token, "key-two")


def test_key_is_padded_with_zeros_to_32_bytes():
    token = encrypt_secret("value", "abc")

    assert decrypt_secret(token, "abc" + "0" * 29) == "value"


def test_long_keys_are_truncated_to_32_bytes():
    token = encrypt_secret("value", "k" * 40)

    assert decrypt_secret(token, "k" * 32) == "value"


def test_tampered_or_malformed_tokens_are_rejected():
    raw = bytearray(base64.b64decode(encrypt_secret("value", "key")))
    raw[-1] ^= 0x01

    with pytest.raises(ValueError):
        decrypt_secret(base64.b64encode(bytes(raw)).decode(), "key")
    with pytest.raises(ValueError):
        decrypt_secret("not base64!", "key")
    with pytest.raises(ValueError):
        decrypt_secret(base64.b64encode(b"short").decode(), "key")


def test_missing_key_is_a_configuration_error():
    with pytest.raises(EncryptionNotConfigured):
        encrypt_secret("value", None)
    with pytest.raises(EncryptionNotConfigured):
        encrypt_secret("value", "")
