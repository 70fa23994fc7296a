"""
Error taxonomy for DocGate.

Every error a route can surface derives from DocGateError, which carries a
machine-readable error_code and the HTTP status the API layer should use.
Adapters catch library exceptions at their boundary and re-raise one of
these kinds.
"""

from typing import Any, Optional


class DocGateError(Exception):
    """Base error for all DocGate failures."""

    error_code: str = "docgate_error"
    http_status: int = 500

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code

    def to_dict(self) -> dict[str, Any]:
        return {
            "detail": self.message,
            "error_code": self.error_code,
        }


class ConfigError(DocGateError):
    """A required secret or setting is missing or malformed. Fatal at startup."""

    error_code = "config_error"
    http_status = 503


# =============================================================================
# Identity provider
# =============================================================================

class ExchangeFailed(DocGateError):
    """The identity provider rejected the authorization code or refresh call."""

    error_code = "exchange_failed"
    http_status = 401


class VerificationFailed(DocGateError):
    """The identity assertion could not be verified."""

    error_code = "verification_failed"
    http_status = 401


class NoRefreshCredential(DocGateError):
    """The identity provider returned no long-lived refresh credential."""

    error_code = "no_refresh_credential"
    http_status = 401

    def __init__(self, message: str = "No refresh credential returned; consent must be re-prompted"):
        super().__init__(message)


# =============================================================================
# Sessions and stored credentials
# =============================================================================

class InvalidToken(DocGateError):
    """
    Session credential rejected.

    The message is fixed: callers must not be able to distinguish a bad
    signature from an expired or tampered credential.
    """

    error_code = "invalid_token"
    http_status = 401

    def __init__(self):
        super().__init__("Invalid token")


class CredentialNotFound(DocGateError):
    """No refresh credential is stored for the user."""

    error_code = "reauthentication_required"
    http_status = 401


class CredentialCorrupted(DocGateError):
    """The stored refresh credential failed its integrity check."""

    error_code = "reauthentication_required"
    http_status = 401


class UserNotFound(DocGateError):
    error_code = "user_not_found"
    http_status = 404


# =============================================================================
# Entitlements and billing
# =============================================================================

class QuotaExceeded(DocGateError):
    """Free-tier document quota exhausted for a new document."""

    error_code = "quota_exceeded"
    http_status = 403

    def __init__(self, user_status: dict[str, Any], message: Optional[str] = None):
        super().__init__(
            message or "Free tier document limit reached. Upgrade to access more documents."
        )
        self.user_status = user_status

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["userStatus"] = self.user_status
        return result


class UnknownBillingCustomer(DocGateError):
    """A billing event referenced a customer id with no matching user."""

    error_code = "unknown_billing_customer"
    http_status = 200

    def __init__(self, customer_id: Optional[str]):
        super().__init__(f"No user found for billing customer {customer_id}")
        self.customer_id = customer_id


class WebhookSignatureInvalid(DocGateError):
    error_code = "invalid_signature"
    http_status = 400


class BillingProviderError(DocGateError):
    """A call to the billing provider API failed."""

    error_code = "billing_provider_error"
    http_status = 502
