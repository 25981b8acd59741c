# =============================
# Bridge error taxonomy
# =============================

from typing import Any, Dict, List, Optional


class BridgeError(Exception):
    """Base class for every error raised by the bridge."""


class RemoteError(BridgeError):
    """A remote system answered with a non-2xx status (or not at all)."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class AuthenticationError(RemoteError):
    """
    Credentials rejected, login response without a session token, or a request
    still rejected after the single re-login. Fatal to a batch run.
    """


class TransportError(RemoteError):
    """Connection / timeout problems below the HTTP layer."""


class ValidationError(BridgeError):
    """The remote accepted the call but reported field-level problems."""

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []

    def __str__(self) -> str:
        base = super().__str__()
        if not self.errors:
            return base
        detail = "; ".join(
            f"{'.'.join(str(p) for p in (e.get('field') or []))}: {e.get('message')}"
            for e in self.errors
        )
        return f"{base} :: {detail}"


class MappingError(BridgeError):
    """No cross-reference exists for a required lookup."""


class MissingCustomerError(BridgeError):
    """Pricing was requested without a customer identity."""
