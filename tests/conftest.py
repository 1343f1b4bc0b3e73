"""Pytest configuration and fixtures for lab proxy tests."""

import json
import os
import pytest
from unittest.mock import Mock

from requests.structures import CaseInsensitiveDict
from urllib3 import HTTPHeaderDict

from labproxy.config.models import (
    ProxyConfig,
    PolicyConfig,
    SecurityConfig,
)


TEST_ALLOWLIST = (
    "testphp.vulnweb.com",
    "juice-shop.herokuapp.com",
    "juice-shop.github.io",
    "badssl.com",
)


@pytest.fixture
def sample_config():
    """Sample configuration for testing."""
    return ProxyConfig(
        allowlist=TEST_ALLOWLIST,
        policies=PolicyConfig(timeout=30000, follow_redirects=True, max_redirects=3),
        security=SecurityConfig(
            allowed_origins=["*"],
            cors_enabled=True,
            allow_credentials=False,
        ),
    )


@pytest.fixture
def sample_config_json():
    """Sample configuration as JSON string."""
    return json.dumps(
        {
            "allowlist": list(TEST_ALLOWLIST),
            "policies": {"timeout": 30000, "followRedirects": True, "maxRedirects": 3},
            "security": {
                "allowedOrigins": ["*"],
                "corsEnabled": True,
                "allowCredentials": False,
            },
        }
    )


@pytest.fixture
def sample_config_data_dict(sample_config_json):
    """Sample configuration as dictionary."""
    return json.loads(sample_config_json)


@pytest.fixture
def sample_lambda_event():
    """Sample Lambda event for testing."""
    return {
        "httpMethod": "GET",
        "path": "/proxy",
        "headers": {
            "Host": "proxy.example.com",
            "User-Agent": "Mozilla/5.0",
            "Accept": "text/html",
            "Origin": "https://academy.example.com",
        },
        "queryStringParameters": {"url": "https://badssl.com/"},
        "multiValueQueryStringParameters": {"url": ["https://badssl.com/"]},
        "body": None,
        "requestContext": {
            "requestId": "test-request-id",
            "identity": {"sourceIp": "192.168.1.1"},
        },
    }


@pytest.fixture
def sample_lambda_context():
    """Sample Lambda context for testing."""
    context = Mock()
    context.function_name = "labproxy-test"
    context.function_version = "$LATEST"
    context.invoked_function_arn = (
        "arn:aws:lambda:eu-west-1:123456789012:function:labproxy-test"
    )
    context.memory_limit_in_mb = "256"
    context.remaining_time_in_millis = lambda: 30000
    context.aws_request_id = "test-request-id"
    return context


@pytest.fixture
def make_upstream_response():
    """Factory for mocked streamed `requests` responses.

    `headers` is a dict or a list of (name, value) pairs; pairs may repeat a
    name, as several `Set-Cookie` fields do.
    """

    def _make(status_code=200, headers=None, body=b"<html>lab</html>",
              is_redirect=False):
        if headers is None:
            headers = {"Content-Type": "text/html"}
        raw_headers = HTTPHeaderDict()
        for key, value in (headers.items() if isinstance(headers, dict) else headers):
            raw_headers.add(key, value)
        response = Mock()
        response.status_code = status_code
        response.headers = CaseInsensitiveDict(raw_headers)
        response.raw.headers = raw_headers
        response.is_redirect = is_redirect
        response.raw.read.return_value = body
        return response

    return _make


@pytest.fixture(autouse=True)
def setup_test_environment():
    """Set up test environment variables."""
    os.environ["LOG_LEVEL"] = "DEBUG"
    os.environ["AWS_DEFAULT_REGION"] = "eu-west-1"
    yield
    # Cleanup
    if "LOG_LEVEL" in os.environ:
        del os.environ["LOG_LEVEL"]
    if "AWS_DEFAULT_REGION" in os.environ:
        del os.environ["AWS_DEFAULT_REGION"]
