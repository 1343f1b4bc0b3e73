"""Standalone HTTP server exposing the lab proxy on GET /proxy."""
import os
from typing import Optional

from flask import Flask, Response, request

from labproxy.services.models import ProxyRequest
from labproxy.services.proxy_service import ProxyService, ProxyError
from labproxy.utils.logger import get_logger, log_request, log_response

logger = get_logger(__name__)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 5174


def create_app(proxy_service: Optional[ProxyService] = None) -> Flask:
    """Create the Flask application serving the proxy endpoint.

    Args:
        proxy_service: Service to relay requests through. A service reading
            the configured allow-list is created when omitted, and its
            configuration is loaded right away.

    Raises:
        ProxyError: If the created service cannot load its configuration.
    """
    service = proxy_service
    if service is None:
        service = ProxyService()
        service.get_config()
    app = Flask(__name__)

    @app.route("/proxy", methods=["GET", "OPTIONS"])
    def proxy():
        proxy_request = ProxyRequest(
            method=request.method,
            path=request.path,
            query_params=request.args.to_dict(flat=False),
            headers=dict(request.headers),
            source_ip=request.remote_addr,
        )
        log_request(logger, proxy_request)
        try:
            proxy_response = service.forward_request(proxy_request)
        except ProxyError as e:
            logger.error("Unexpected error in proxy handler: %s", e, exc_info=True)
            return Response(ProxyError.response_text,
                            status=ProxyError.status_code,
                            mimetype="text/plain")
        log_response(logger, proxy_response.status_code, len(proxy_response.body))
        response = Response(proxy_response.body,
                            status=proxy_response.status_code,
                            headers=list(proxy_response.headers.items()))
        if not any(key.lower() == "content-type" for key in proxy_response.headers):
            # Werkzeug adds a default text/html type
            del response.headers["Content-Type"]
        return response

    return app


def main() -> None:
    """Run the proxy with Flask's threaded server."""
    host = os.environ.get("HOST", DEFAULT_HOST)
    port = int(os.environ.get("PORT", DEFAULT_PORT))
    app = create_app()
    logger.info("Proxy running on http://%s:%s", host, port)
    app.run(host=host, port=port, threaded=True)


if __name__ == "__main__":
    main()
