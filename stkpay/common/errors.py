"""Error taxonomy shared by the initiator and the reconciler."""


class StkPayError(Exception):
    """Base class for all domain errors raised by stkpay components."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(StkPayError):
    """Bad caller input. `field` names the rule that rejected it."""

    def __init__(self, message: str, field: str) -> None:
        super().__init__(message)
        self.field = field


class ConfigError(StkPayError):
    """Operator-fixable misconfiguration, e.g. missing provider credentials."""

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing = missing or []


class ProviderError(StkPayError):
    """The payment provider refused or failed a request."""

    def __init__(
        self,
        message: str,
        status_code: int = 502,
        details: dict | None = None,
        checkout_request_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.details = details or {}
        self.checkout_request_id = checkout_request_id


class PersistenceError(StkPayError):
    """A store read or write failed."""
