# SPDX-License-Identifier: Apache-2.0

"""
Authentication middleware for JWT token validation and officer context extraction.

This module provides Flask middleware for validating JWT tokens, checking
the Redis blocklist, and building the officer context for request processing.
"""

from functools import wraps
from flask import request, g, current_app
from typing import Optional, Dict, Any, Callable
from opentelemetry import trace
import logging

from models.entities import OfficerContext
from services.auth import TokenValidationError
from .error_handler import AuthenticationException

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class AuthMiddleware:
    """
    JWT authentication middleware for Flask applications.

    Handles token extraction, validation, blocklist checking, and officer
    context building for protected endpoints.
    """

    def __init__(self, auth_service, redis_service=None):
        """
        Initialize the authentication middleware.

        Args:
            auth_service: JWT authentication service
            redis_service: Redis service for token blocklist
        """
        self.auth_service = auth_service
        self.redis_service = redis_service

    def extract_token_from_request(self) -> Optional[str]:
        """
        Extract JWT token from request headers.

        Returns:
            JWT token string or None if not found
        """
        auth_header = request.headers.get('Authorization', '')

        if not auth_header:
            return None

        # Handle "Bearer <token>" format
        if auth_header.startswith('Bearer '):
            return auth_header[7:] or None

        return auth_header

    def is_token_blocked(self, token: str) -> bool:
        """
        Check if token is in the Redis blocklist.

        Args:
            token: JWT token to check

        Returns:
            True if token is blocked, False otherwise
        """
        if self.redis_service is None:
            return False

        try:
            token_id = self.auth_service.extract_token_id(token)
            return self.redis_service.is_token_blocked(token_id)
        except TokenValidationError as e:
            logger.error(f"Error checking token blocklist: {str(e)}")
            # Fail secure - treat as blocked if we can't check
            return True

    def build_officer_context(self, token_payload: Dict[str, Any], request_info: Dict[str, Any]) -> OfficerContext:
        """
        Build officer context from validated token payload and request information.

        Args:
            token_payload: Decoded JWT payload
            request_info: Request metadata (IP, user agent, etc.)

        Returns:
            OfficerContext for request processing
        """
        return OfficerContext(
            cpo_id=str(token_payload["sub"]),
            name=token_payload.get("name"),
            token_payload=token_payload,
            ip_address=request_info.get("ip_address"),
            user_agent=request_info.get("user_agent"),
            session_id=request_info.get("session_id")
        )

    def get_request_info(self) -> Dict[str, Any]:
        """
        Extract request metadata for officer context.

        Returns:
            Dictionary with request information
        """
        return {
            "ip_address": request.remote_addr,
            "user_agent": request.headers.get('User-Agent', ''),
            "session_id": request.headers.get('X-Session-ID'),
            "request_id": request.headers.get('X-Request-ID')
        }

    def authenticate(self) -> OfficerContext:
        """
        Authenticate the current request.

        Raises:
            AuthenticationException: missing, revoked or invalid token
        """
        with tracer.start_as_current_span("auth.middleware.validate_request") as span:
            span.set_attribute("auth.operation", "validate_request")

            token = self.extract_token_from_request()
            if not token:
                span.set_attribute("auth.result", "missing_token")
                logger.warning("Authentication failed: missing token")
                raise AuthenticationException("Missing authorization token")

            if self.is_token_blocked(token):
                span.set_attribute("auth.result", "token_blocked")
                logger.warning("Authentication failed: token is blocked")
                raise AuthenticationException("Token has been revoked")

            try:
                token_payload = self.auth_service.validate_token(token, "access")
            except TokenValidationError as e:
                span.set_attribute("auth.result", "invalid_token")
                logger.warning(f"Authentication failed: {str(e)}")
                raise AuthenticationException(str(e))

            officer = self.build_officer_context(token_payload, self.get_request_info())

            span.set_attributes({
                "auth.result": "success",
                "dob.cpo_id": officer.cpo_id
            })

            logger.debug(
                "Authentication successful",
                extra={"cpo_id": officer.cpo_id, "ip_address": officer.ip_address}
            )
            return officer


def require_auth(f: Callable) -> Callable:
    """
    Decorator to require JWT authentication for Flask routes.

    The authenticated officer is stored in ``g.officer_context``.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_middleware: AuthMiddleware = current_app.auth_middleware
        g.officer_context = auth_middleware.authenticate()
        return f(*args, **kwargs)

    return decorated_function
