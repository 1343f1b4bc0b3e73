from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from urllib3 import HTTPHeaderDict


@dataclass
class ProxyRequest:
    """Incoming proxy request, independent of the hosting runtime."""
    method: str
    path: str
    query_params: Dict[str, List[str]] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    source_ip: Optional[str] = None
    request_id: Optional[str] = None

    def header(self, name: str) -> Optional[str]:
        """Look up a request header ignoring case."""
        name = name.lower()
        for key, value in self.headers.items():
            if key.lower() == name:
                return value
        return None

    @property
    def origin(self) -> Optional[str]:
        return self.header("Origin")

    @classmethod
    def from_lambda_event(cls, event: Dict[str, Any]) -> "ProxyRequest":
        """Build a request from an API Gateway proxy integration event."""
        query_params = {
            key: list(values)
            for key, values in (event.get("multiValueQueryStringParameters") or {}).items()
        }
        for key, value in (event.get("queryStringParameters") or {}).items():
            query_params.setdefault(key, [value])
        request_context = event.get("requestContext") or {}
        return cls(
            method=event.get("httpMethod") or "GET",
            path=event.get("path") or "/",
            query_params=query_params,
            headers=dict(event.get("headers") or {}),
            source_ip=(request_context.get("identity") or {}).get("sourceIp"),
            request_id=request_context.get("requestId"),
        )


@dataclass
class ProxyResponse:
    """Proxy response.

    Headers keep repeated fields such as several `Set-Cookie` values.
    """
    status_code: int
    headers: HTTPHeaderDict
    body: bytes
