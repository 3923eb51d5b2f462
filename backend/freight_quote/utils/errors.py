from typing import Dict, Iterable, Optional
from fastapi import status


class FreightQuoteError(Exception):
    """Base class for failures surfaced by the rate and booking pipelines."""

    error_code = "INTERNAL_ERROR"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(FreightQuoteError):
    """Malformed shipment; rejected before any upstream call."""

    error_code = "VALIDATION_ERROR"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, field_errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.field_errors = dict(field_errors or {})


class QuotaExhausted(FreightQuoteError):
    error_code = "QUOTA_EXHAUSTED"
    http_status = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, client_id: str, used: int = 0):
        super().__init__("No rate searches remaining for this account.")
        self.client_id = client_id
        self.used = used


class UpstreamTransportError(FreightQuoteError):
    """The rate provider could not be reached at all."""

    error_code = "UPSTREAM_ERROR"
    http_status = status.HTTP_502_BAD_GATEWAY


class UpstreamModeFailure(FreightQuoteError):
    """A single freight mode's provider call failed; absorbed by the dispatcher."""

    def __init__(self, mode: str, reason: str):
        super().__init__(f"{mode}: {reason}")
        self.mode = mode
        self.reason = reason


class PersistenceFailure(FreightQuoteError):
    pass


class NotFound(FreightQuoteError):
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, what: str, identifier: Optional[str] = None):
        super().__init__(f"{what.capitalize()} not found")
        self.what = what
        self.identifier = identifier
        self.error_code = f"{what.upper()}_NOT_FOUND"


def field_errors_from_pydantic(errors: Iterable[dict]) -> Dict[str, str]:
    """Flatten pydantic error dicts into ``{"origin.postalCode": "msg"}``."""
    flat: Dict[str, str] = {}
    for err in errors:
        loc = [str(p) for p in err.get("loc", ()) if p != "body"]
        flat[".".join(loc) or "body"] = str(err.get("msg", "invalid"))
    return flat
