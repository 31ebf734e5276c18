# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Error handling middleware with structured HAL responses.
Provides centralized error handling and formatting for Flask applications.
"""

from flask import Flask, request, jsonify, g
from werkzeug.exceptions import HTTPException
from typing import Dict, Any, Tuple, Optional
from opentelemetry import trace
import logging

from services.hal import HalFormatter

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


# Problem type and title per HTTP status raised by Flask or werkzeug
HTTP_PROBLEMS = {
    400: ("bad-request", "Bad Request"),
    401: ("authentication-required", "Authentication Required"),
    403: ("insufficient-permissions", "Insufficient Permissions"),
    404: ("resource-not-found", "Resource Not Found"),
    405: ("method-not-allowed", "Method Not Allowed"),
    409: ("resource-conflict", "Resource Conflict"),
    500: ("internal-server-error", "Internal Server Error"),
    503: ("service-unavailable", "Service Unavailable"),
}


class ErrorHandlerMiddleware:
    """Maps werkzeug HTTP errors and unexpected exceptions to HAL problem responses."""

    def __init__(self, app: Flask, base_url: str):
        self.app = app
        self.hal_formatter = HalFormatter(base_url)
        self.register_error_handlers()

    def register_error_handlers(self):
        @self.app.errorhandler(HTTPException)
        def handle_http_exception(error):
            return self.handle_http_error(error)

        @self.app.errorhandler(Exception)
        def handle_generic_exception(error):
            return self.handle_unexpected_error(error)

    def _hide_detail(self) -> bool:
        return self.app.config.get('ENVIRONMENT') == 'production'

    def handle_http_error(self, error: HTTPException) -> Tuple[Dict[str, Any], int]:
        """Build the problem document for a werkzeug HTTP error."""
        status = error.code or 500
        error_type, title = HTTP_PROBLEMS.get(status, ("http-error", error.name))
        detail = str(error.description) if error.description else title

        with tracer.start_as_current_span("error_handler.http_error") as span:
            span.set_attributes({
                "error.type": error_type,
                "error.status": status,
                "http.method": request.method,
                "http.path": request.path
            })

            log_extra = {
                "error_type": error_type,
                "status_code": status,
                "detail": detail,
                "path": request.path,
                "method": request.method,
                "ip_address": request.remote_addr
            }
            if status >= 500:
                logger.error(f"Server error: {title}", extra=log_extra)
                if self._hide_detail():
                    detail = "An internal server error occurred"
            else:
                logger.warning(f"Client error: {title}", extra=log_extra)

            problem = self.hal_formatter.builder.build_error_response(
                error_type, title, status, detail, request.path
            )
            return problem, status

    def handle_unexpected_error(self, error: Exception) -> Tuple[Dict[str, Any], int]:
        """Log an unhandled exception and answer with a 500 problem."""
        with tracer.start_as_current_span("error_handler.unexpected_error") as span:
            span.set_attributes({
                "error.type": "unexpected-error",
                "error.class": error.__class__.__name__,
                "http.method": request.method,
                "http.path": request.path
            })
            span.record_exception(error)

            logger.error(
                f"Unexpected error: {error.__class__.__name__}",
                extra={
                    "error_type": "unexpected-error",
                    "error_class": error.__class__.__name__,
                    "path": request.path,
                    "method": request.method,
                    "cpo_id": getattr(g.get("officer_context"), "cpo_id", None)
                },
                exc_info=True
            )

            if self._hide_detail():
                detail = "An unexpected error occurred"
            else:
                detail = f"{error.__class__.__name__}: {str(error)}"

            return self.hal_formatter.format_server_error(detail, request.path), 500


class CustomException(Exception):
    """Base class for custom application exceptions."""

    def __init__(self, message: str, status_code: int = 500, error_type: str = "application-error"):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_type = error_type


class ValidationException(CustomException):
    """Exception for validation errors."""

    def __init__(self, message: str, validation_errors: list = None):
        super().__init__(message, 400, "validation-error")
        self.validation_errors = validation_errors or []


class AuthenticationException(CustomException):
    """Exception for authentication errors."""

    def __init__(self, message: str):
        super().__init__(message, 401, "authentication-required")


class NotFoundException(CustomException):
    """Exception for resource not found errors."""

    def __init__(self, message: str):
        super().__init__(message, 404, "resource-not-found")


class IntegrityViolationException(CustomException):
    """Rejected attempt to break a DOB entry's integrity guarantees."""

    def __init__(self, message: str, entry_id: Optional[str] = None,
                 status_code: int = 409, error_type: str = "integrity-violation"):
        super().__init__(message, status_code, error_type)
        self.entry_id = entry_id


class ImmutableEntryException(IntegrityViolationException):
    """Mutation attempted on an immutable entry."""

    def __init__(self, entry_id: str):
        super().__init__(
            f"Entry {entry_id} is immutable and cannot be modified",
            entry_id,
            error_type="immutable-entry"
        )


class DuplicateEntryException(IntegrityViolationException):
    """Entry ID already exists in the store."""

    def __init__(self, entry_id: str):
        super().__init__(
            f"Entry {entry_id} already exists",
            entry_id,
            error_type="duplicate-entry"
        )


class EntryOwnershipException(IntegrityViolationException):
    """Entry belongs to a different officer."""

    def __init__(self, entry_id: str):
        super().__init__(
            f"Entry {entry_id} belongs to another officer",
            entry_id,
            status_code=403,
            error_type="entry-ownership"
        )


class ServiceUnavailableException(CustomException):
    """Exception for service unavailable errors."""

    def __init__(self, message: str):
        super().__init__(message, 503, "service-unavailable")


class PersistenceUnavailableException(ServiceUnavailableException):
    """Transient failure reaching the entry store backend."""

    def __init__(self, message: str = "Entry store is temporarily unavailable"):
        super().__init__(message)


def register_custom_error_handlers(app: Flask, hal_formatter: HalFormatter):
    """
    Register handlers for custom exceptions.

    Args:
        app: Flask application
        hal_formatter: HAL formatter instance
    """

    @app.errorhandler(CustomException)
    def handle_custom_exception(error: CustomException):
        with tracer.start_as_current_span("error_handler.custom_exception") as span:
            span.set_attributes({
                "error.type": error.error_type,
                "error.status": error.status_code,
                "http.method": request.method,
                "http.path": request.path
            })

            logger.warning(
                f"Custom exception: {error.error_type}",
                extra={
                    "error_type": error.error_type,
                    "status_code": error.status_code,
                    "error_message": error.message,
                    "path": request.path,
                    "method": request.method
                }
            )

            if isinstance(error, ValidationException):
                error_response = hal_formatter.format_validation_error(
                    error.message,
                    request.path,
                    error.validation_errors
                )
            else:
                error_response = hal_formatter.format_problem(
                    error.error_type,
                    error.status_code,
                    error.message,
                    request.path
                )

            return jsonify(error_response), error.status_code
