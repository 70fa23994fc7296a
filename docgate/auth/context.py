"""
Typed session context for authenticated requests.

Produced by SessionTokenService.verify() and handed to route handlers by the
require_session dependency. The tier carried here is advisory only: quota and
entitlement decisions re-read the persisted user record.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class SessionContext:
    user_id: str
    email: str
    session_id: str
    tier: str

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "email": self.email,
            "sessionId": self.session_id,
            "tier": self.tier,
        }
