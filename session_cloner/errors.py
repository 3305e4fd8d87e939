"""Exception hierarchy for Session Cloner.

Fatal errors (not found, validation, parse, abort) stop a clone before any
output is written. ProviderError is recoverable: the orchestrator retries it
and, once attempts are exhausted, keeps the original text.
"""


class SessionClonerError(Exception):
    """Base class for all Session Cloner errors."""


class SessionNotFoundError(SessionClonerError):
    """Raised when a source session cannot be located."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class ValidationError(SessionClonerError, ValueError):
    """Raised for invalid options, overlapping bands or malformed identifiers."""


class SessionParseError(SessionClonerError):
    """Raised when a session record cannot be parsed."""

    def __init__(self, path: str, line_number: int | None, reason: str):
        self.path = path
        self.line_number = line_number
        self.reason = reason
        location = f"{path}:{line_number}" if line_number is not None else path
        super().__init__(f"Malformed session record at {location}: {reason}")


class ConfigMissingError(SessionClonerError):
    """Raised when required configuration (API key, provider name) is missing."""

    def __init__(self, config_name: str):
        self.config_name = config_name
        super().__init__(f"Required configuration missing: {config_name}")


class ProviderError(SessionClonerError):
    """Raised by a compression provider when a single call fails."""


class OperationAbortedError(SessionClonerError):
    """Raised when a clone is aborted while compression calls were in flight."""
