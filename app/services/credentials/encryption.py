"""AES-256-GCM encryption for credentials stored at rest.

Each value is encrypted with a key derived from the process-wide secret and
a fresh random salt (PBKDF2-HMAC-SHA512), under a fresh random IV. The
stored form is four base64 fields joined by ``:``::

    base64(salt):base64(iv):base64(ciphertext):base64(tag)

``:`` is outside the base64 alphabet, so splitting is unambiguous. Changing
this layout requires re-encrypting existing rows; there is no version field.
"""

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from app.services.credentials.exceptions import DecryptionFailed

DELIMITER = ":"
SALT_LENGTH = 64
IV_LENGTH = 16
TAG_LENGTH = 16
KEY_LENGTH = 32
DEFAULT_ITERATIONS = 100_000


class SecretCipher:
    """Authenticated symmetric cipher bound to one process-wide secret."""

    def __init__(self, secret: str, iterations: int = DEFAULT_ITERATIONS):
        """Initialize the cipher.

        Args:
            secret: Process-wide key material, supplied out of band.
            iterations: PBKDF2 iteration count.
        """
        if not secret:
            raise ValueError("Encryption secret must not be empty")
        self._secret = secret.encode("utf-8")
        self._iterations = iterations

    def _derive_key(self, salt: bytes) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA512(),
            length=KEY_LENGTH,
            salt=salt,
            iterations=self._iterations,
        )
        return kdf.derive(self._secret)

    def encrypt_bytes(self, data: bytes) -> str:
        """Encrypt raw bytes into the serialized four-field form."""
        salt = os.urandom(SALT_LENGTH)
        iv = os.urandom(IV_LENGTH)
        key = self._derive_key(salt)

        # AESGCM appends the tag to the ciphertext
        sealed = AESGCM(key).encrypt(iv, data, None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]

        return DELIMITER.join(
            base64.b64encode(part).decode("ascii") for part in (salt, iv, ciphertext, tag)
        )

    def decrypt_bytes(self, payload: str) -> bytes:
        """Decrypt a serialized value, failing closed on any tampering.

        Raises:
            DecryptionFailed: Malformed payload, wrong secret or failed tag check.
        """
        parts = payload.split(DELIMITER)
        if len(parts) != 4:
            raise DecryptionFailed("Invalid encrypted value format")

        try:
            salt, iv, ciphertext, tag = (base64.b64decode(part, validate=True) for part in parts)
        except (binascii.Error, ValueError) as e:
            raise DecryptionFailed("Encrypted value is not valid base64") from e

        if not salt or len(iv) < 8 or len(tag) != TAG_LENGTH:
            raise DecryptionFailed("Invalid encrypted value format")

        key = self._derive_key(salt)
        try:
            return AESGCM(key).decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            raise DecryptionFailed(
                "Stored credential failed authentication (corrupted data or wrong encryption key)"
            ) from e

    def encrypt(self, text: str) -> str:
        """Encrypt text (e.g. an OAuth access token)."""
        return self.encrypt_bytes(text.encode("utf-8"))

    def decrypt(self, payload: str) -> str:
        """Decrypt a value produced by :meth:`encrypt`."""
        data = self.decrypt_bytes(payload)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionFailed("Decrypted credential is not valid UTF-8") from e

