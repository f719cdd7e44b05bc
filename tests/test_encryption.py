"""Tests for credential encryption at rest."""

import base64
import string

import pytest

from app.services.credentials.encryption import (
    DELIMITER,
    IV_LENGTH,
    SALT_LENGTH,
    TAG_LENGTH,
    SecretCipher,
)
from app.services.credentials.exceptions import DecryptionFailed


@pytest.mark.parametrize(
    "plaintext",
    [
        "",
        "ya29.a0AfH6SMBx",
        "contains:the:delimiter:::",
        "ünïcødé ✓ 日本語",
        "x" * 4096,
    ],
)
def test_round_trip(cipher: SecretCipher, plaintext: str) -> None:
    assert cipher.decrypt(cipher.encrypt(plaintext)) == plaintext


def test_round_trip_arbitrary_bytes(cipher: SecretCipher) -> None:
    data = bytes(range(256))
    assert cipher.decrypt_bytes(cipher.encrypt_bytes(data)) == data


def test_serialized_layout(cipher: SecretCipher) -> None:
    """Four base64 fields: salt, IV, ciphertext, tag."""
    parts = cipher.encrypt("secret").split(DELIMITER)

    assert len(parts) == 4
    salt, iv, ciphertext, tag = (base64.b64decode(p) for p in parts)
    assert len(salt) == SALT_LENGTH
    assert len(iv) == IV_LENGTH
    assert len(ciphertext) == len("secret")
    assert len(tag) == TAG_LENGTH


def test_delimiter_not_in_base64_alphabet() -> None:
    alphabet = string.ascii_letters + string.digits + "+/="
    assert DELIMITER not in alphabet


def test_fresh_salt_and_iv_per_encryption(cipher: SecretCipher) -> None:
    first = cipher.encrypt("same value")
    second = cipher.encrypt("same value")

    assert first != second
    assert first.split(DELIMITER)[0] != second.split(DELIMITER)[0]
    assert first.split(DELIMITER)[1] != second.split(DELIMITER)[1]


def test_wrong_secret_fails_closed(cipher: SecretCipher) -> None:
    payload = cipher.encrypt("secret")
    other = SecretCipher("a-different-secret", iterations=1_000)

    with pytest.raises(DecryptionFailed):
        other.decrypt(payload)


def test_tampered_ciphertext_fails_closed(cipher: SecretCipher) -> None:
    salt, iv, ciphertext, tag = cipher.encrypt("secret value").split(DELIMITER)
    raw = bytearray(base64.b64decode(ciphertext))
    raw[0] ^= 0x01
    tampered = DELIMITER.join([salt, iv, base64.b64encode(bytes(raw)).decode(), tag])

    with pytest.raises(DecryptionFailed):
        cipher.decrypt(tampered)


def test_tampered_tag_fails_closed(cipher: SecretCipher) -> None:
    salt, iv, ciphertext, tag = cipher.encrypt("secret value").split(DELIMITER)
    raw = bytearray(base64.b64decode(tag))
    raw[-1] ^= 0xFF
    tampered = DELIMITER.join([salt, iv, ciphertext, base64.b64encode(bytes(raw)).decode()])

    with pytest.raises(DecryptionFailed):
        cipher.decrypt(tampered)


@pytest.mark.parametrize(
    "payload",
    [
        "",
        "not-encrypted",
        "a:b:c",
        "a:b:c:d:e",
        "!!!:???:***:&&&",
    ],
)
def test_malformed_payload_fails_closed(cipher: SecretCipher, payload: str) -> None:
    with pytest.raises(DecryptionFailed):
        cipher.decrypt(payload)


def test_empty_secret_rejected() -> None:
    with pytest.raises(ValueError):
        SecretCipher("")
