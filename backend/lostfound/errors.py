"""Service error taxonomy and the JSON error handlers that expose it over HTTP.

Services raise these; routes let them propagate and the handlers registered by
``register_error_handlers`` render ``{"error": ...}`` with the matching status.
``DeliveryError`` is the exception: it is raised by the live-channel and push
layers and always caught by the notification fan-out.
"""
from __future__ import annotations

import logging

from flask import Flask, jsonify
from marshmallow import ValidationError as SchemaValidationError

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: str | None = None, details: dict | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.details = details


class ValidationError(ServiceError):
    status_code = 400
    message = "Invalid input"

    @classmethod
    def from_schema(cls, err: SchemaValidationError) -> "ValidationError":
        messages = err.messages if isinstance(err.messages, dict) else {"_schema": err.messages}
        return cls("Please provide all required fields", details=messages)


class NotFoundOrForbidden(ServiceError):
    status_code = 404
    message = "Not found or access denied"


class PersistenceError(ServiceError):
    status_code = 500
    message = "Database error"


class DeliveryError(ServiceError):
    status_code = 502
    message = "Delivery failed"


class AuthenticationRequired(ServiceError):
    status_code = 401
    message = "Authentication required"


class VerificationRequired(ServiceError):
    status_code = 403
    message = "Please verify your email address first"


class AdminRequired(ServiceError):
    status_code = 403
    message = "Access denied. Admin only."


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ServiceError)
    def _service_error(err: ServiceError):
        if err.status_code >= 500:
            logger.error("request failed: %s", err.message, exc_info=err)
        body = {"error": err.message}
        if err.details:
            body["details"] = err.details
        return jsonify(body), err.status_code

    @app.errorhandler(SchemaValidationError)
    def _schema_error(err: SchemaValidationError):
        return _service_error(ValidationError.from_schema(err))
