"""
Credential store for long-lived Google refresh credentials.

SECURITY:
- Credentials are AES-256-GCM encrypted before they touch the database
- A record that fails its integrity check is reported as CredentialCorrupted;
  it is never reinterpreted as plaintext
- Plaintext credentials are NEVER logged or returned by list endpoints

Usage:
    from docgate.auth.credential_store import CredentialStore

    store = CredentialStore(db_session=session, cipher=container.credential_cipher)
    store.store(user_id, refresh_token)
    refresh_token = store.retrieve(user_id)
"""

import logging

from sqlalchemy.orm import Session

from docgate.errors import CredentialCorrupted, CredentialNotFound
from docgate.platform.encryption import AesGcmCipher, EncryptedPayload, IntegrityError
from docgate.repositories.users_repo import UsersRepository

logger = logging.getLogger(__name__)


class CredentialStore:
    """Encrypts and persists one refresh credential per user."""

    def __init__(self, db_session: Session, cipher: AesGcmCipher):
        self.db_session = db_session
        self._cipher = cipher
        self._users = UsersRepository(db_session)

    # =========================================================================
    # Write
    # =========================================================================

    def store(self, user_id: str, refresh_credential: str) -> None:
        """
        Encrypt and persist a refresh credential, replacing any previous one.

        Raises:
            ValueError: If the credential is empty.
            UserNotFound: If the user does not exist.
        """
        if not refresh_credential:
            raise ValueError("refresh_credential must not be empty")

        user = self._users.require(user_id)
        payload = self._cipher.encrypt_text(refresh_credential)
        user.encrypted_refresh_credential = payload.to_json()
        self.db_session.flush()

        logger.info("Refresh credential stored", extra={"user_id": user_id})

    # =========================================================================
    # Read
    # =========================================================================

    def has_credential(self, user_id: str) -> bool:
        user = self._users.get(user_id)
        return bool(user is not None and user.encrypted_refresh_credential)

    def retrieve(self, user_id: str) -> str:
        """
        Decrypt the stored refresh credential.

        Raises:
            CredentialNotFound: If the user has no stored credential.
            CredentialCorrupted: If the stored value fails authentication.
        """
        user = self._users.get(user_id)
        if user is None or not user.encrypted_refresh_credential:
            raise CredentialNotFound(f"No refresh credential stored for user {user_id}")

        try:
            payload = EncryptedPayload.from_json(user.encrypted_refresh_credential)
            credential = self._cipher.decrypt_text(payload)
        except IntegrityError as exc:
            logger.error(
                "Stored refresh credential failed integrity check",
                extra={"user_id": user_id},
            )
            raise CredentialCorrupted(
                "Stored refresh credential is unreadable; re-authentication required"
            ) from exc

        return credential
