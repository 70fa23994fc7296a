"""
Tests for the AES-256-GCM encryption primitive.

Covers:
- Round trips for text, arbitrary bytes and empty input
- Fresh IV per call
- Tamper detection on ciphertext, tag and IV
- Serialized forms (JSON triple and compact string)
- Key validation
"""

import os

import pytest

from docgate.platform.encryption import (
    AesGcmCipher,
    EncryptedPayload,
    IntegrityError,
    IV_LENGTH,
)


def _flip_hex_bit(hex_value: str, byte_index: int = 0) -> str:
    raw = bytearray(bytes.fromhex(hex_value))
    raw[byte_index] ^= 0x01
    return raw.hex()


# =============================================================================
# Round trips
# =============================================================================

class TestRoundTrip:

    def test_text_round_trip(self, credential_cipher):
        payload = credential_cipher.encrypt_text("1//0gRefreshTokenValue")
        assert credential_cipher.decrypt_text(payload) == "1//0gRefreshTokenValue"

    def test_binary_round_trip(self, credential_cipher):
        data = os.urandom(257)
        assert credential_cipher.decrypt(credential_cipher.encrypt(data)) == data

    def test_empty_plaintext(self, credential_cipher):
        payload = credential_cipher.encrypt(b"")
        assert payload.ciphertext == ""
        assert credential_cipher.decrypt(payload) == b""

    def test_unicode_text(self, credential_cipher):
        payload = credential_cipher.encrypt_text("clé secrète ✓")
        assert credential_cipher.decrypt_text(payload) == "clé secrète ✓"


class TestRandomIv:

    def test_iv_length(self, credential_cipher):
        payload = credential_cipher.encrypt_text("value")
        assert len(bytes.fromhex(payload.iv)) == IV_LENGTH

    def test_same_plaintext_encrypts_differently(self, credential_cipher):
        first = credential_cipher.encrypt_text("same value")
        second = credential_cipher.encrypt_text("same value")
        assert first.iv != second.iv
        assert first.ciphertext != second.ciphertext


# =============================================================================
# Tampering
# =============================================================================

class TestTamperDetection:

    def test_flipped_ciphertext_bit(self, credential_cipher):
        payload = credential_cipher.encrypt_text("sensitive")
        tampered = EncryptedPayload(
            iv=payload.iv,
            ciphertext=_flip_hex_bit(payload.ciphertext),
            auth_tag=payload.auth_tag,
        )
        with pytest.raises(IntegrityError):
            credential_cipher.decrypt(tampered)

    def test_flipped_tag_bit(self, credential_cipher):
        payload = credential_cipher.encrypt_text("sensitive")
        tampered = EncryptedPayload(
            iv=payload.iv,
            ciphertext=payload.ciphertext,
            auth_tag=_flip_hex_bit(payload.auth_tag, 5),
        )
        with pytest.raises(IntegrityError):
            credential_cipher.decrypt(tampered)

    def test_flipped_iv_bit(self, credential_cipher):
        payload = credential_cipher.encrypt_text("sensitive")
        tampered = EncryptedPayload(
            iv=_flip_hex_bit(payload.iv, 3),
            ciphertext=payload.ciphertext,
            auth_tag=payload.auth_tag,
        )
        with pytest.raises(IntegrityError):
            credential_cipher.decrypt(tampered)

    def test_wrong_key(self, credential_cipher):
        payload = credential_cipher.encrypt_text("sensitive")
        other = AesGcmCipher(os.urandom(32))
        with pytest.raises(IntegrityError):
            other.decrypt(payload)

    def test_malformed_hex(self, credential_cipher):
        payload = credential_cipher.encrypt_text("sensitive")
        broken = EncryptedPayload(iv="zz" * IV_LENGTH, ciphertext=payload.ciphertext, auth_tag=payload.auth_tag)
        with pytest.raises(IntegrityError):
            credential_cipher.decrypt(broken)

    def test_truncated_tag(self, credential_cipher):
        payload = credential_cipher.encrypt_text("sensitive")
        broken = EncryptedPayload(iv=payload.iv, ciphertext=payload.ciphertext, auth_tag=payload.auth_tag[:-2])
        with pytest.raises(IntegrityError):
            credential_cipher.decrypt(broken)


# =============================================================================
# Serialization
# =============================================================================

class TestSerialization:

    def test_json_uses_auth_tag_key(self, credential_cipher):
        payload = credential_cipher.encrypt_text("value")
        data = payload.to_dict()
        assert set(data) == {"iv", "ciphertext", "authTag"}
        assert EncryptedPayload.from_json(payload.to_json()) == payload

    def test_compact_form(self, credential_cipher):
        payload = credential_cipher.encrypt_text("value")
        assert payload.to_compact().count(":") == 2
        assert EncryptedPayload.from_compact(payload.to_compact()) == payload

    def test_from_json_rejects_garbage(self):
        with pytest.raises(IntegrityError):
            EncryptedPayload.from_json("not json")
        with pytest.raises(IntegrityError):
            EncryptedPayload.from_json('{"iv": "00"}')

    def test_from_compact_rejects_wrong_part_count(self):
        with pytest.raises(IntegrityError):
            EncryptedPayload.from_compact("aa:bb")


class TestKeys:

    def test_rejects_short_key(self):
        with pytest.raises(ValueError):
            AesGcmCipher(b"short")

    def test_passphrase_derivation_is_deterministic(self):
        first = AesGcmCipher.from_passphrase("nonce-secret")
        second = AesGcmCipher.from_passphrase("nonce-secret")
        assert second.decrypt_text(first.encrypt_text("value")) == "value"
