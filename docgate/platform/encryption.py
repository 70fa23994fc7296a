"""
Authenticated symmetric encryption for stored credentials and session nonces.

AES-256-GCM with a fresh random 16-byte IV on every call. Output is the
hex-encoded triple (iv, ciphertext, auth_tag). Decryption fails closed with
IntegrityError on any tampering, truncation or key mismatch.

Usage:
    from docgate.platform.encryption import AesGcmCipher

    cipher = AesGcmCipher(key_bytes)
    payload = cipher.encrypt_text("1//refresh-token")
    stored = payload.to_json()

    plaintext = cipher.decrypt_text(EncryptedPayload.from_json(stored))
"""

import hashlib
import json
import os
from dataclasses import dataclass
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

KEY_LENGTH = 32
IV_LENGTH = 16
TAG_LENGTH = 16


class IntegrityError(Exception):
    """Ciphertext could not be authenticated or decoded."""
    pass


@dataclass(frozen=True)
class EncryptedPayload:
    """Hex-encoded output of a single encryption."""

    iv: str
    ciphertext: str
    auth_tag: str

    def to_dict(self) -> dict[str, str]:
        return {"iv": self.iv, "ciphertext": self.ciphertext, "authTag": self.auth_tag}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    def to_compact(self) -> str:
        """Single-string form used inside session tokens: iv:ciphertext:authTag."""
        return f"{self.iv}:{self.ciphertext}:{self.auth_tag}"

    @classmethod
    def from_dict(cls, data: dict) -> "EncryptedPayload":
        try:
            iv, ciphertext, auth_tag = data["iv"], data["ciphertext"], data["authTag"]
        except (KeyError, TypeError) as exc:
            raise IntegrityError("Encrypted payload is missing fields") from exc
        if not all(isinstance(part, str) for part in (iv, ciphertext, auth_tag)):
            raise IntegrityError("Encrypted payload fields must be strings")
        return cls(iv=iv, ciphertext=ciphertext, auth_tag=auth_tag)

    @classmethod
    def from_json(cls, raw: str) -> "EncryptedPayload":
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise IntegrityError("Encrypted payload is not valid JSON") from exc
        return cls.from_dict(data)

    @classmethod
    def from_compact(cls, raw: str) -> "EncryptedPayload":
        if not isinstance(raw, str):
            raise IntegrityError("Encrypted payload must be a string")
        parts = raw.split(":")
        if len(parts) != 3:
            raise IntegrityError("Encrypted payload must have three parts")
        return cls(iv=parts[0], ciphertext=parts[1], auth_tag=parts[2])


class AesGcmCipher:
    """
    AES-256-GCM cipher bound to a single key.

    Stateless apart from the key, so one instance is shared process-wide
    without locking.
    """

    def __init__(self, key: bytes):
        if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_LENGTH:
            raise ValueError(f"AES-256-GCM key must be exactly {KEY_LENGTH} bytes")
        self._aead = AESGCM(bytes(key))

    @classmethod
    def from_hex_key(cls, hex_key: str) -> "AesGcmCipher":
        return cls(bytes.fromhex(hex_key))

    @classmethod
    def from_passphrase(cls, passphrase: str) -> "AesGcmCipher":
        """Derive the key as SHA-256 of an arbitrary-length secret."""
        return cls(hashlib.sha256(passphrase.encode("utf-8")).digest())

    def encrypt(self, plaintext: Union[bytes, str]) -> EncryptedPayload:
        if isinstance(plaintext, str):
            plaintext = plaintext.encode("utf-8")

        iv = os.urandom(IV_LENGTH)
        sealed = self._aead.encrypt(iv, plaintext, None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]

        return EncryptedPayload(
            iv=iv.hex(),
            ciphertext=ciphertext.hex(),
            auth_tag=tag.hex(),
        )

    def decrypt(self, payload: EncryptedPayload) -> bytes:
        """
        Decrypt and authenticate a payload.

        Raises:
            IntegrityError: If the tag does not verify or any field is malformed.
        """
        try:
            iv = bytes.fromhex(payload.iv)
            ciphertext = bytes.fromhex(payload.ciphertext)
            tag = bytes.fromhex(payload.auth_tag)
        except (TypeError, ValueError) as exc:
            raise IntegrityError("Encrypted payload is not valid hex") from exc

        if len(iv) != IV_LENGTH or len(tag) != TAG_LENGTH:
            raise IntegrityError("Encrypted payload has invalid IV or tag length")

        try:
            return self._aead.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as exc:
            raise IntegrityError("Ciphertext failed authentication") from exc

    def encrypt_text(self, plaintext: str) -> EncryptedPayload:
        return self.encrypt(plaintext.encode("utf-8"))

    def decrypt_text(self, payload: EncryptedPayload) -> str:
        try:
            return self.decrypt(payload).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise IntegrityError("Decrypted payload is not UTF-8 text") from exc
