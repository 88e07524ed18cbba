"""Errors raised by the scan reconciliation engine.

Every error is recoverable by the caller. The HTTP layer renders them through
``setup_exception_handlers`` using ``status_code`` / ``http_status``.
"""
from typing import Any, Dict, List, Optional

from shared.utils.app_status_code import AppStatusCode


class KitPackError(Exception):
    """Base class of the engine's error taxonomy"""
    status_code: str = AppStatusCode.OPERATION_FAILED
    http_status: int = 400
    retryable: bool = False
    default_message: str = "Operation failed"

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.default_message
        self.details: Dict[str, Any] = details
        super().__init__(self.message)

    def payload(self) -> Any:
        return self.details or None


class UnknownBarcode(KitPackError):
    status_code = AppStatusCode.BARCODE_UNKNOWN
    http_status = 404
    default_message = "Barcode not found"


class WrongBarcodeType(KitPackError):
    status_code = AppStatusCode.BARCODE_WRONG_TYPE
    default_message = "Barcode type not allowed here"


class InvalidTransition(KitPackError):
    status_code = AppStatusCode.BARCODE_INVALID_TRANSITION
    http_status = 409

    def __init__(self, current, attempted, message: Optional[str] = None):
        self.current = current
        self.attempted = attempted
        super().__init__(
            message or f"Cannot {_label(attempted)} a barcode in status {_label(current)}",
            current=_label(current),
            attempted=_label(attempted),
        )


class AlreadyConsumed(KitPackError):
    status_code = AppStatusCode.BARCODE_ALREADY_CONSUMED
    http_status = 409
    default_message = "Barcode has already been consumed"


class QuantityExceeded(KitPackError):
    status_code = AppStatusCode.QUANTITY_EXCEEDED
    http_status = 409
    default_message = "Required quantity for this component has already been met"


class NoMatchingRequirement(KitPackError):
    status_code = AppStatusCode.NO_MATCHING_REQUIREMENT
    http_status = 422
    default_message = "No open requirement accepts this barcode"


class NotScanned(KitPackError):
    status_code = AppStatusCode.BARCODE_NOT_SCANNED
    http_status = 404
    default_message = "Barcode was not scanned in this session"


class LinkedChildrenPresent(KitPackError):
    status_code = AppStatusCode.BARCODE_HAS_CHILDREN
    http_status = 409
    default_message = "Remove the linked sub-components first"


class SessionNotFound(KitPackError):
    status_code = AppStatusCode.SESSION_NOT_FOUND
    http_status = 404
    default_message = "Session not found"


class SessionClosed(KitPackError):
    status_code = AppStatusCode.SESSION_CLOSED
    http_status = 409
    default_message = "Session is already completed"


class IncompleteRequirements(KitPackError):
    status_code = AppStatusCode.INCOMPLETE_REQUIREMENTS
    http_status = 409

    def __init__(self, unmet: List[Any]):
        self.unmet = list(unmet)
        summary = ", ".join(str(item) for item in self.unmet)
        super().__init__(f"All components must be scanned before completing. Missing: {summary}")

    def payload(self) -> Any:
        return [item.as_dict() for item in self.unmet]


class ConcurrentModification(KitPackError):
    status_code = AppStatusCode.CONCURRENT_MODIFICATION
    http_status = 409
    retryable = True
    default_message = "Session was modified concurrently, refetch its status and retry"


class OperationTimeout(KitPackError):
    status_code = AppStatusCode.OPERATION_TIMEOUT
    http_status = 503
    retryable = True
    default_message = "Operation timed out, retry"


class KitNotFound(KitPackError):
    status_code = AppStatusCode.KIT_NOT_FOUND
    http_status = 404
    default_message = "Kit not found"


class KitMismatch(KitPackError):
    status_code = AppStatusCode.KIT_MISMATCH
    default_message = "Box barcode belongs to a different kit"


class KitLocked(KitPackError):
    status_code = AppStatusCode.KIT_LOCKED
    http_status = 409
    default_message = "Kit has open packing sessions, finish them before editing its components"


class BomValidationError(KitPackError):
    status_code = AppStatusCode.BOM_INVALID
    default_message = "Invalid kit structure"


def _label(value) -> str:
    return getattr(value, "value", value)
