"""DocGate: Google sign-in sessions, Stripe entitlements and document quotas."""

__version__ = "1.0.0"
