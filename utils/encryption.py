# utils/encryption.py
"""
Symmetric encryption for landlord payment credentials.

Format: base64(iv[12] || ciphertext || tag), AES-256-GCM. The key is the
DATA_ENCRYPTION_KEY string, UTF-8 encoded, right-padded with "0" or cut to
32 bytes, so values written by earlier deployments still decrypt.
"""
import base64
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

IV_LENGTH = 12
KEY_LENGTH = 32


class EncryptionNotConfigured(Exception):
     pass


def _derive_key(secret: Optional[str]) -> bytes:
     if not secret:
          raise EncryptionNotConfigured("DATA_ENCRYPTION_KEY is not set")
     return secret.ljust(KEY_LENGTH, "0")[:KEY_LENGTH].encode("utf-8")[:KEY_LENGTH]


def encrypt_secret(plaintext: str, secret: Optional[str]) -> str:
     iv = os.urandom(IV_LENGTH)
     ciphertext = AESGCM(_derive_key(secret)).encrypt(iv, plaintext.encode("utf-8"), None)
     return base64.b64encode(iv + ciphertext).decode("ascii")


def decrypt_secret(token: str, secret: Optional[str]) -> str:
     """Raises ValueError when the token is malformed or the key is wrong."""
     try:
          raw = base64.b64decode(token, validate=True)
     except (ValueError, TypeError) as exc:
          raise ValueError("Encrypted value is not valid base64") from exc
     if len(raw) <= IV_LENGTH:
          raise ValueError("Encrypted value is too short")
     try:
          plaintext = AESGCM(_derive_key(secret)).decrypt(raw[:IV_LENGTH], raw[IV_LENGTH:], None)
     except InvalidTag as exc:
          raise ValueError("Encrypted value could not be authenticated") from exc
     return plaintext.decode("utf-8")
