"""Lambda handler for the lab proxy."""
import base64
from typing import Dict, Any, List, Tuple

from labproxy.services.models import ProxyRequest, ProxyResponse
from labproxy.services.proxy_service import ProxyService, ProxyError
from labproxy.utils.logger import get_logger, log_request, log_response

logger = get_logger(__name__)

# Global instances for Lambda container reuse
proxy_service = ProxyService()


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Main Lambda handler for proxy requests.

    Args:
        event: API Gateway event object.
        context: Lambda context object.

    Returns:
        Dict: API Gateway response object.
    """
    try:
        request = ProxyRequest.from_lambda_event(event)
        log_request(logger, request)
        proxy_response = proxy_service.forward_request(request)
        log_response(logger,
                     proxy_response.status_code,
                     len(proxy_response.body))
        return _to_gateway_response(proxy_response)
    except ProxyError as e:
        logger.error("Unexpected error in proxy handler: %s", e, exc_info=True)
        return {"statusCode": ProxyError.status_code,
                "headers": {"Content-Type": "text/plain; charset=utf-8"},
                "body": ProxyError.response_text,
                "isBase64Encoded": False}


def _to_gateway_response(proxy_response: ProxyResponse) -> Dict[str, Any]:
    """Encode a proxy response for API Gateway.

    Content-encoded or non UTF-8 bodies are sent base64 encoded.
    """
    headers, multi_value_headers = _split_headers(proxy_response.headers)
    encoded = any(key.lower() == "content-encoding"
                  for key in proxy_response.headers)
    body = None
    if not encoded:
        try:
            body = proxy_response.body.decode("utf-8")
        except UnicodeDecodeError:
            body = None
    if body is None:
        response = {"statusCode": proxy_response.status_code,
                    "headers": headers,
                    "body": base64.b64encode(proxy_response.body).decode("ascii"),
                    "isBase64Encoded": True}
    else:
        response = {"statusCode": proxy_response.status_code,
                    "headers": headers,
                    "body": body,
                    "isBase64Encoded": False}
    if multi_value_headers:
        response["multiValueHeaders"] = multi_value_headers
    return response


def _split_headers(
    proxy_headers,
) -> Tuple[Dict[str, str], Dict[str, List[str]]]:
    """Separate repeated header fields, which API Gateway takes as lists."""
    values: Dict[str, List[str]] = {}
    for key, value in proxy_headers.items():
        values.setdefault(key, []).append(value)
    headers = {key: items[0] for key, items in values.items() if len(items) == 1}
    multi_value_headers = {key: items for key, items in values.items()
                           if len(items) > 1}
    return headers, multi_value_headers
