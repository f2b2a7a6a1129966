"""Error taxonomy for the call-session engine.

Each error carries the HTTP status the API layer renders it with.
JudgeError and BridgeError are recovered where they are raised and
never reach a client.
"""


class ScorecardError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ScorecardError):
    """Missing or malformed request fields."""

    status_code = 400


class NotFoundError(ScorecardError):
    """Unknown callId."""

    status_code = 404


class DialError(ScorecardError):
    """Provider refused to place the call (bad number, carrier rejection)."""

    status_code = 500


class SignalError(ScorecardError):
    """Provider refused an in-call signal, or the call is not active."""

    status_code = 502


class JudgeError(ScorecardError):
    """Language-model judge failed or returned an unusable verdict."""


class BridgeError(ScorecardError):
    """Realtime speech session failed mid-call."""
