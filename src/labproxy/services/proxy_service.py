"""Proxy service relaying allow-listed lab pages with permissive framing."""
from typing import Dict, Optional
from urllib.parse import urljoin, urlparse

import requests
from cachetools import LRUCache, cachedmethod
from urllib3 import HTTPHeaderDict

from labproxy.config.config_loader import ConfigLoader, ConfigurationError
from labproxy.config.models import ProxyConfig
from labproxy.services.models import ProxyRequest, ProxyResponse
from labproxy.utils.cors_handler import CORSHandler
from labproxy.utils.logger import get_logger

logger = get_logger(__name__)


class ProxyError(Exception):
    """Raised when proxy operations fail."""

    status_code = 500
    response_text = "Proxy error"


class BadRequestError(ProxyError):
    """Raised when the target URL parameter is missing."""

    status_code = 400
    response_text = "Missing url param"


class ForbiddenError(ProxyError):
    """Raised when the target host is not in the allow-list."""

    status_code = 403
    response_text = "Domain not allowed"


class MethodNotAllowedError(ProxyError):
    """Raised for methods other than GET, HEAD and OPTIONS."""

    status_code = 405
    response_text = "Method not allowed"


class InvalidURLError(ProxyError):
    """Raised when the target URL cannot be parsed as an http(s) URL."""


class UpstreamError(ProxyError):
    """Raised when the upstream fetch cannot produce a response."""


class ProxyService:
    """Service for relaying allow-listed pages so they can be framed."""

    URL_PARAM = "url"
    _ALLOWED_SCHEMES = ("http", "https")
    _FRAME_BLOCKING_HEADERS = {"x-frame-options", "content-security-policy"}
    _FRAME_HEADER_OVERRIDES = {
        "X-Frame-Options": "",
        "Content-Security-Policy": "frame-ancestors 'self' *",
    }
    _HOP_BY_HOP_HEADERS = {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }

    def __init__(
        self,
        config: Optional[ProxyConfig] = None,
        config_loader: Optional[ConfigLoader] = None,
    ):
        """Initialize the proxy service.

        Args:
            config: Configuration to use as is. When omitted it is loaded
                once through `config_loader`.
            config_loader: Loader for the configuration document.
        """
        self._config = config
        self._config_loader = config_loader or ConfigLoader()
        self._cache = LRUCache(maxsize=1)

    def forward_request(self, request: ProxyRequest) -> ProxyResponse:
        """Fetch the page named by the `url` parameter and relay it.

        Args:
            request: Incoming request carrying the target URL.

        Returns:
            ProxyResponse: The upstream status, headers and body with the
            frame-blocking headers overridden, or a plain-text error response
            (400, 403, 405 or 500).

        Raises:
            ProxyError: If the configuration cannot be loaded.
        """
        config = self.get_config()
        cors_handler = CORSHandler(config.security)
        if request.method == "OPTIONS":
            return cors_handler.handle_preflight(request.origin)
        cors_headers = cors_handler.get_cors_headers(request.origin)

        try:
            if request.method not in ("GET", "HEAD"):
                raise MethodNotAllowedError(f"Unsupported method {request.method}")
            target_url = self._target_url(request)
            self._check_host(config, target_url)
            logger.info(
                "Forwarding request to %s", target_url,
                extra={"target_url": target_url,
                       "timeout": config.policies.timeout},
            )
            upstream = self._fetch(config, target_url)
            try:
                body = upstream.raw.read(decode_content=False)
            finally:
                upstream.close()
        except ProxyError as e:
            if e.status_code >= 500:
                logger.error("Error forwarding request: %s", e, exc_info=True)
            else:
                logger.warning("Rejected proxy request: %s", e)
            return self._text_response(e.status_code, e.response_text, cors_headers)
        except Exception as e:
            logger.error("Unexpected error forwarding request: %s", e, exc_info=True)
            return self._text_response(
                ProxyError.status_code, ProxyError.response_text, cors_headers
            )

        logger.info(
            "Received response from %s", target_url,
            extra={"status_code": upstream.status_code,
                   "response_size": len(body)},
        )
        return ProxyResponse(
            status_code=upstream.status_code,
            headers=self._relay_headers(upstream.raw.headers, cors_headers),
            body=body,
        )

    @cachedmethod(cache=lambda self: self._cache)
    def get_config(self) -> ProxyConfig:
        """Return the configuration, loading it on first use.

        Raises:
            ProxyError: If the configuration cannot be loaded.
        """
        if self._config is not None:
            return self._config
        try:
            config = self._config_loader.load_config()
        except ConfigurationError as e:
            logger.error("Failed to load configuration: %s", e)
            raise ProxyError("Configuration could not be loaded") from e
        logger.info(
            "Configuration loaded and validated",
            extra={"allowlist": list(config.allowlist)},
        )
        return config

    def _target_url(self, request: ProxyRequest) -> str:
        values = request.query_params.get(self.URL_PARAM) or []
        if len(values) != 1 or not isinstance(values[0], str) or not values[0]:
            raise BadRequestError("Request has no single url parameter")
        return values[0]

    def _check_host(self, config: ProxyConfig, url: str) -> None:
        """Ensure `url` is an http(s) URL whose host is allow-listed.

        Raises:
            InvalidURLError: If the URL has no usable scheme, host or port.
            ForbiddenError: If the host is not in the allow-list.
        """
        try:
            parsed = urlparse(url)
            # Accessing the port validates it
            parsed.port
        except ValueError as e:
            raise InvalidURLError(f"Invalid target URL: {url}") from e
        if parsed.scheme.lower() not in self._ALLOWED_SCHEMES or not parsed.hostname:
            raise InvalidURLError(f"Invalid target URL: {url}")
        if not config.is_host_allowed(parsed.hostname):
            raise ForbiddenError(f"Host not allowed: {parsed.hostname}")

    def _fetch(self, config: ProxyConfig, target_url: str) -> requests.Response:
        """GET the target, following redirects only to allow-listed hosts.

        The returned response is streamed; the caller reads and closes it.

        Raises:
            ForbiddenError: If a redirect leaves the allow-list.
            UpstreamError: If the redirect limit is exceeded.
        """
        policies = config.policies
        timeout = policies.timeout / 1000  # Convert ms to seconds
        url = target_url
        redirects = 0
        while True:
            response = requests.get(
                url,
                timeout=timeout,
                allow_redirects=False,
                stream=True,
            )
            if not (policies.follow_redirects and response.is_redirect):
                return response
            location = response.headers["Location"]
            response.close()
            if redirects >= policies.max_redirects:
                raise UpstreamError(
                    f"Exceeded {policies.max_redirects} redirects fetching {target_url}"
                )
            redirects += 1
            url = urljoin(url, location)
            self._check_host(config, url)
            logger.info("Following redirect to %s", url,
                        extra={"target_url": target_url, "redirects": redirects})

    @classmethod
    def _relay_headers(
        cls,
        upstream_headers: HTTPHeaderDict,
        cors_headers: Dict[str, str],
    ) -> HTTPHeaderDict:
        """Merge upstream headers over the CORS headers and unblock framing.

        Args:
            upstream_headers: Headers received from the upstream, repeated
                fields included.
            cors_headers: CORS headers for the caller's origin.

        Returns:
            HTTPHeaderDict: Headers for the relayed response.
        """
        headers = HTTPHeaderDict(cors_headers)
        replaced = set()
        for key, value in upstream_headers.items():
            lower = key.lower()
            if lower in cls._FRAME_BLOCKING_HEADERS or lower in cls._HOP_BY_HOP_HEADERS:
                continue
            if lower not in replaced:
                headers.discard(key)
                replaced.add(lower)
            headers.add(key, value)
        for key, value in cls._FRAME_HEADER_OVERRIDES.items():
            headers[key] = value
        return headers

    @staticmethod
    def _text_response(
        status_code: int,
        text: str,
        cors_headers: Dict[str, str],
    ) -> ProxyResponse:
        headers = HTTPHeaderDict(cors_headers)
        headers["Content-Type"] = "text/plain; charset=utf-8"
        return ProxyResponse(status_code=status_code,
                             headers=headers,
                             body=text.encode("utf-8"))
