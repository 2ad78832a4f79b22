from __future__ import annotations


class ServiceError(RuntimeError):
    """Recoverable service error (validation/state/etc.)."""

    code = "service_error"
    http_status = 400

    def to_dict(self) -> dict:
        return {"error": self.code, "message": str(self)}


class ValidationError(ServiceError):
    """Malformed quantity/price/markup or a missing required field."""

    code = "validation_error"
    http_status = 400


class NotFoundError(ServiceError):
    code = "not_found"
    http_status = 404


class InvalidTransitionError(ServiceError):
    """Requested status change is not in the document's transition table."""

    code = "invalid_transition"
    http_status = 409


class DocumentLockedError(ServiceError):
    """Items or tax rate edited after the document left its editable status."""

    code = "document_locked"
    http_status = 409


class ConversionNotAllowedError(ServiceError):
    """Source document is not in the status that unlocks conversion."""

    code = "conversion_not_allowed"
    http_status = 409


class AlreadyConvertedError(ServiceError):
    """Conversion would bill the source document more than once."""

    code = "already_converted"
    http_status = 409


class DeliveryError(ServiceError):
    """PDF rendering or email delivery failed; document state is unchanged."""

    code = "delivery_failed"
    http_status = 502


class ConflictError(ServiceError):
    """The document changed since the client last read it."""

    code = "conflict"
    http_status = 409
