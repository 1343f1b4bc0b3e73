"""CORS utilities for the lab proxy."""

from typing import Dict, Optional
from urllib.parse import urlparse

from urllib3 import HTTPHeaderDict

from labproxy.config.models import SecurityConfig
from labproxy.services.models import ProxyResponse
from labproxy.utils.logger import get_logger

logger = get_logger(__name__)


class CORSHandler:
    """Handles CORS validation and header generation."""

    ALLOWED_METHODS = "GET, OPTIONS"
    ALLOWED_HEADERS = "Content-Type, Authorization, X-Requested-With, Accept, Origin"

    def __init__(self, security_config: SecurityConfig):
        """Initialize CORS handler.

        Args:
            security_config: Security configuration containing CORS settings.
        """
        self.security_config = security_config

    def validate_origin(self, origin: Optional[str]) -> bool:
        """Validate if the request origin is allowed.

        Args:
            origin: Origin header from the request.

        Returns:
            bool: True if origin is allowed, False otherwise.
        """
        if not self.security_config.cors_enabled:
            return True

        if not origin:
            # Same-origin or non-browser request
            logger.debug("No origin header present")
            return True

        if origin in self.security_config.allowed_origins:
            logger.debug("Origin %s is explicitly allowed", origin)
            return True

        for allowed_origin in self.security_config.allowed_origins:
            if allowed_origin == "*":
                logger.debug("Wildcard origin allowed")
                return True

            # Subdomain matching (*.example.com)
            if allowed_origin.startswith("*."):
                domain = allowed_origin[2:]
                origin_host = urlparse(origin).hostname or ""
                if origin_host.endswith(f".{domain}") or origin_host == domain:
                    logger.debug(
                        "Origin %s matches wildcard pattern %s",
                        origin, allowed_origin,
                    )
                    return True

        logger.warning("Origin %s is not allowed", origin)
        return False

    def get_cors_headers(self, origin: Optional[str]) -> Dict[str, str]:
        """Get CORS headers for the response.

        Args:
            origin: Origin header from the request.

        Returns:
            Dict[str, str]: CORS headers to include in response.
        """
        headers = {}

        if not self.security_config.cors_enabled:
            return headers

        if self.validate_origin(origin):
            if "*" in self.security_config.allowed_origins and not (
                origin and self.security_config.allow_credentials
            ):
                headers["Access-Control-Allow-Origin"] = "*"
            elif origin:
                headers["Access-Control-Allow-Origin"] = origin
                headers["Vary"] = "Origin"
            else:
                headers["Access-Control-Allow-Origin"] = (
                    self.security_config.allowed_origins[0]
                )

        headers["Access-Control-Allow-Methods"] = self.ALLOWED_METHODS
        headers["Access-Control-Allow-Headers"] = self.ALLOWED_HEADERS

        if self.security_config.allow_credentials:
            headers["Access-Control-Allow-Credentials"] = "true"

        # Cache preflight for 24 hours
        headers["Access-Control-Max-Age"] = "86400"

        return headers

    def handle_preflight(self, origin: Optional[str]) -> ProxyResponse:
        """Handle CORS preflight request.

        Args:
            origin: Origin header from the request.

        Returns:
            ProxyResponse: Empty 204 on success, 403 for a rejected origin.
        """
        if not self.validate_origin(origin):
            return ProxyResponse(
                status_code=403,
                headers=HTTPHeaderDict({"Content-Type": "text/plain; charset=utf-8"}),
                body=b"Origin not allowed",
            )

        return ProxyResponse(
            status_code=204,
            headers=HTTPHeaderDict(self.get_cors_headers(origin)),
            body=b"",
        )
