from __future__ import annotations

from typing import Any


class OrderPipelineError(Exception):
    """Base error raised by the order pipeline engine."""

    code = "order_pipeline_error"
    status_code = 500

    def __init__(self, message: str, *, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(OrderPipelineError):
    code = "not_found"
    status_code = 404


class ForbiddenError(OrderPipelineError):
    code = "forbidden"
    status_code = 403


class ConflictError(OrderPipelineError):
    code = "conflict"
    status_code = 409


class ValidationFailureError(OrderPipelineError):
    code = "validation_failed"
    status_code = 400


class UnexpectedError(OrderPipelineError):
    """Wraps a persistence failure; the original message is kept for diagnostics."""

    code = "unexpected_error"
    status_code = 500
