# SPDX-License-Identifier: Apache-2.0

"""
Authentication service for JWT access token validation.

Tokens are issued by the external identity service and signed with RS256;
this service only verifies them with the configured public key.
"""

import os
import jwt
from typing import Optional, Dict, Any, Tuple
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from opentelemetry import trace
import logging

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class TokenValidationError(Exception):
    """Raised when token validation fails."""
    pass


def generate_key_pair() -> Tuple[str, str]:
    """Generate an RSA key pair (private PEM, public PEM) for development use."""
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048
    )

    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    ).decode('utf-8')

    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    ).decode('utf-8')

    return private_pem, public_pem


class AuthService:
    """JWT validation service with RS256 verification."""

    def __init__(self, public_key: Optional[str] = None):
        """
        Initialize the authentication service.

        Args:
            public_key: RS256 public key for token verification (PEM format)
        """
        self.public_key = public_key or os.getenv("JWT_PUBLIC_KEY")
        self.algorithm = "RS256"

        if not self.public_key:
            logger.warning("No JWT_PUBLIC_KEY configured, all tokens will be rejected")

    def validate_token(self, token: str, token_type: str = "access") -> Dict[str, Any]:
        """
        Validate and decode a JWT token.

        Args:
            token: JWT token string to validate
            token_type: Expected token type

        Returns:
            Decoded token payload

        Raises:
            TokenValidationError: If token is invalid or expired
        """
        with tracer.start_as_current_span("auth.validate_token") as span:
            span.set_attributes({
                "auth.operation": "validate_token",
                "auth.token_type": token_type
            })

            if not self.public_key:
                span.set_attribute("auth.validation_result", "unconfigured")
                raise TokenValidationError("Token verification key is not configured")

            try:
                payload = jwt.decode(
                    token,
                    self.public_key,
                    algorithms=[self.algorithm],
                    options={"verify_exp": True, "require": ["sub", "exp"]}
                )

                if payload.get("type", "access") != token_type:
                    raise TokenValidationError(f"Invalid token type. Expected {token_type}")

                span.set_attributes({
                    "auth.validation_result": "success",
                    "dob.cpo_id": payload.get("sub")
                })

                logger.debug(
                    "Token validated successfully",
                    extra={"cpo_id": payload.get("sub"), "token_type": token_type}
                )

                return payload

            except jwt.ExpiredSignatureError:
                span.set_attribute("auth.validation_result", "expired")
                logger.warning("Token validation failed: token expired")
                raise TokenValidationError("Token has expired")

            except jwt.InvalidTokenError as e:
                span.set_attribute("auth.validation_result", "invalid")
                logger.warning(f"Token validation failed: {str(e)}")
                raise TokenValidationError(f"Invalid token: {str(e)}")

    def extract_token_id(self, token: str) -> str:
        """
        Extract a unique identifier from a token for blocklist purposes.

        Args:
            token: JWT token string

        Returns:
            The ``jti`` claim, or an identifier built from subject and issue time
        """
        try:
            payload = jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError as e:
            logger.error(f"Failed to extract token ID: {str(e)}")
            raise TokenValidationError(f"Invalid token format: {str(e)}")

        if payload.get("jti"):
            return str(payload["jti"])
        return f"{payload.get('sub')}:{payload.get('iat')}:{payload.get('type', 'access')}"
