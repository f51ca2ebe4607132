"""Error taxonomy shared by the planning services and the HTTP layer."""

from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

MISSING_INDEX_MARKERS = (
    "no such table",
    "undefinedtable",
    "undefined table",
    "does not exist",
    "requires an index",
)


class ServiceError(Exception):
    code = "service_error"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_payload(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class NotFoundError(ServiceError):
    code = "not_found"


class ValidationError(ServiceError):
    code = "validation_error"

    def __init__(self, message: str, *, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        merged = dict(details or {})
        if field:
            merged["field"] = field
        super().__init__(message, details=merged)
        self.field = field


class DegradedDependencyError(ServiceError):
    """A secondary lookup is unavailable; callers treating it as optional recover locally."""

    code = "degraded_dependency"


class ProviderError(ServiceError):
    code = "provider_error"


class StoreError(ServiceError):
    code = "store_error"

    def is_index_error(self) -> bool:
        text = " ".join(
            str(part) for part in (self.message, self.details.get("original"), self.details.get("type")) if part
        ).lower()
        return any(marker in text for marker in MISSING_INDEX_MARKERS)


def to_service_error(exc: BaseException) -> ServiceError:
    if isinstance(exc, ServiceError):
        return exc
    if isinstance(exc, SQLAlchemyError):
        original = getattr(exc, "orig", None)
        return StoreError(
            "Storage operation failed",
            details={"original": str(original or exc), "type": type(original or exc).__name__},
        )
    return ServiceError(str(exc) or type(exc).__name__)
