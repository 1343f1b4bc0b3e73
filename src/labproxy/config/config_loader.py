"""Configuration loader for the lab proxy."""

import json
import os
from typing import Dict, Any, List, Tuple

try:
    import boto3

    BOTO3_AVAILABLE = True
except ImportError:
    BOTO3_AVAILABLE = False

from .models import (
    DEFAULT_ALLOWLIST,
    ProxyConfig,
    PolicyConfig,
    SecurityConfig,
)

from labproxy.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = "config/proxy.json"
MAX_TIMEOUT_MS = 300000
MAX_REDIRECTS = 30


class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""


class ConfigLoader:
    """Loads and validates proxy configuration from S3 or local file."""

    def __init__(
        self,
        s3_bucket: str = None,
        s3_key: str = None,
        config_path: str = None,
    ) -> None:
        """
        Initialize the config loader.

        Args:
            s3_bucket: S3 bucket name for configuration.
            s3_key: S3 key for configuration file.
            config_path: Path to the local configuration file (fallback).
        """
        # S3 configuration (priority)
        self._s3_bucket = s3_bucket or os.environ.get("LABPROXY_CONFIG_S3_BUCKET")
        self._s3_key = s3_key or os.environ.get("LABPROXY_CONFIG_S3_KEY")
        self._s3_client = None
        # Local file configuration (fallback)
        self.config_path = config_path or os.environ.get(
            "LABPROXY_CONFIG_PATH", DEFAULT_CONFIG_PATH
        )
        # Only a missing default file falls back to built-in defaults
        self._config_path_required = bool(
            config_path
            or os.environ.get("LABPROXY_CONFIG_PATH")
            or self._check_s3_config()
        )
        if self._check_s3_config():
            self._initialize_s3_client()

    def _initialize_s3_client(self) -> None:
        if not BOTO3_AVAILABLE:
            logger.warning(
                "S3 configuration provided but boto3 is not available. "
                "Install boto3 to use S3 config source."
            )
            return
        try:
            self._s3_client = boto3.client("s3")
        except Exception as e:
            # Falls back to the local file
            logger.warning("Failed to initialize S3 client: %s", e)

    def _check_s3_config(self) -> bool:
        return bool(self._s3_bucket and self._s3_key)

    def load_config(self) -> ProxyConfig:
        """
        Load and validate the proxy configuration.

        Tries to load from S3 first (if configured), then falls back to local
        file. When no path was given and the default file does not exist,
        the built-in defaults are used.

        Returns:
            `ProxyConfig`: The validated configuration object.

        Raises:
            `ConfigurationError`: If configuration is invalid or cannot be
            loaded.
        """
        config_data = None

        if self._s3_client and self._check_s3_config():
            try:
                config_data = self._load_from_s3()
            except Exception as e:
                logger.warning(
                    "Failed to load config from S3 (bucket=%s, key=%s), "
                    "falling back to local file. Reason: %s",
                    self._s3_bucket, self._s3_key, str(e)
                )

        if config_data is None:
            if not self._config_path_required and not os.path.exists(self.config_path):
                logger.warning(
                    "Configuration file %s not found, using default configuration",
                    self.config_path,
                )
                return ProxyConfig()
            config_data = self._load_from_file()
        return self._parse_config(config_data)

    def _load_from_s3(self) -> Dict[str, Any]:
        """Load configuration from S3.

        Returns:
            `Dict`: Configuration data.

        Raises:
            `ConfigurationError`: If S3 load fails.
        """
        try:
            response = self._s3_client.get_object(
                Bucket=self._s3_bucket, Key=self._s3_key
            )
            config_content = response["Body"].read().decode("utf-8")
            return json.loads(config_content)
        except Exception as e:
            raise ConfigurationError("Unexpected error loading from S3") from e

    def _load_from_file(self) -> Dict[str, Any]:
        """Load configuration from local file.

        Raises:
            `ConfigurationError`: If file load fails.
        """
        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            raise ConfigurationError(
                f"Configuration file not found: {self.config_path}"
            )
        except json.JSONDecodeError as e:
            raise ConfigurationError("Invalid JSON in configuration file") from e

    def _parse_config(self, config_data: Dict[str, Any]) -> ProxyConfig:
        """Parse configuration data into structured objects.

        Args:
            config_data: Raw configuration dictionary.

        Returns:
            `ProxyConfig`: Parsed configuration object.

        Raises:
            `ConfigurationError`: If configuration structure is invalid.
        """
        if not isinstance(config_data, dict):
            raise ConfigurationError("Configuration must be a JSON object")
        allowlist = self._parse_allowlist(
            config_data.get("allowlist", list(DEFAULT_ALLOWLIST))
        )
        policy_data = config_data.get("policies", {})
        if not isinstance(policy_data, dict):
            raise ConfigurationError("Policies must be a JSON object")
        security_data = config_data.get("security", {})
        if not isinstance(security_data, dict):
            raise ConfigurationError("Security settings must be a JSON object")
        policy_config = self._policy_config(policy_data)
        security_config = self._security_config(security_data)
        return ProxyConfig(
            allowlist=allowlist, policies=policy_config, security=security_config
        )

    @staticmethod
    def _parse_allowlist(hosts: List[Any]) -> Tuple[str, ...]:
        """Normalize the allow-list into a tuple of unique lower-cased hosts.

        Raises:
            `ConfigurationError`: If the allow-list is empty or malformed.
        """
        if not isinstance(hosts, list):
            raise ConfigurationError("Allow-list must be a list of host names")
        if len(hosts) == 0:
            raise ConfigurationError("At least one allowed host must be configured")
        normalized = []
        for host in hosts:
            if not isinstance(host, str) or not host.strip():
                raise ConfigurationError("Allowed host must be a non-empty string")
            host = host.strip().lower()
            if "/" in host or ":" in host:
                raise ConfigurationError(
                    f"Allowed host must be a bare host name: {host}"
                )
            if host not in normalized:
                normalized.append(host)
        return tuple(normalized)

    def _policy_config(self, policy_data: dict[str, Any]) -> PolicyConfig:
        """Parse a policy configuration.

        Args:
            policy_data: Raw policy configuration dictionary.

        Returns:
            `PolicyConfig`: Parsed policy configuration object.
        """
        defaults = PolicyConfig()
        policy_config = PolicyConfig(
            timeout=policy_data.get("timeout", defaults.timeout),
            follow_redirects=policy_data.get(
                "followRedirects", defaults.follow_redirects
            ),
            max_redirects=policy_data.get("maxRedirects", defaults.max_redirects),
        )
        self._validate_policy_config(policy_config)
        return policy_config

    @staticmethod
    def _validate_policy_config(policy_config: PolicyConfig) -> None:
        timeout = policy_config.timeout
        if (not isinstance(timeout, int) or isinstance(timeout, bool)
                or not 0 < timeout <= MAX_TIMEOUT_MS):
            raise ConfigurationError(
                "Policy timeout must be an integer between 0 and 300000"
            )
        if not isinstance(policy_config.follow_redirects, bool):
            raise ConfigurationError("Policy followRedirects must be a boolean")
        max_redirects = policy_config.max_redirects
        if (not isinstance(max_redirects, int) or isinstance(max_redirects, bool)
                or not 0 <= max_redirects <= MAX_REDIRECTS):
            raise ConfigurationError("Policy maxRedirects must be an integer "
                                     "between 0 and 30")

    def _security_config(self, security_data: dict[str, Any]) -> SecurityConfig:
        """Parse a security configuration.

        Args:
            security_data: Raw security configuration dictionary.

        Returns:
            `SecurityConfig`: Parsed security configuration object.
        """
        defaults = SecurityConfig()
        security_config = SecurityConfig(
            allowed_origins=security_data.get(
                "allowedOrigins", defaults.allowed_origins
            ),
            cors_enabled=security_data.get("corsEnabled", defaults.cors_enabled),
            allow_credentials=security_data.get(
                "allowCredentials", defaults.allow_credentials
            ),
        )
        self._validate_security_config(security_config)
        return security_config

    @staticmethod
    def _validate_security_config(security_config: SecurityConfig) -> None:
        origins = security_config.allowed_origins
        if not isinstance(origins, list) or not all(
            isinstance(origin, str) for origin in origins
        ):
            raise ConfigurationError("Security allowedOrigins must be a list of strings")
        if not isinstance(security_config.cors_enabled, bool):
            raise ConfigurationError("Security corsEnabled must be a boolean")
        if not isinstance(security_config.allow_credentials, bool):
            raise ConfigurationError("Security allowCredentials must be a boolean")
        if security_config.cors_enabled and not security_config.allowed_origins:
            raise ConfigurationError("CORS is enabled but no allowed origins specified")
