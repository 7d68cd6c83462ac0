#!/usr/bin/env python3
"""
Configuration Manager for krane

This module handles loading and managing configuration from config.yaml
and environment variables, and builds the immutable option sets the
commands run with.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import yaml

from krane.error_utils import InvalidPlatformError
from krane.image_names import is_valid_repository_name, parse_platform

VALID_OUTPUT_FORMATS = ("table", "json", "yaml")


class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""


class ConfigManager:
    """Manages configuration for krane"""

    def __init__(self, config_file: str = None, validate: bool = True):
        """Initialize ConfigManager

        Args:
            config_file: Path to configuration YAML file (defaults to config.yaml or CONFIG_FILE env var)
            validate: If True, validate configuration on initialization
        """
        if config_file is None:
            config_file = os.environ.get("CONFIG_FILE", "config.yaml")
        self.config_file = config_file
        self.config = self._load_config()

        if validate:
            self.validate_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file with defaults"""
        default_config = {
            "ecr": {"region": "eu-west-1", "prefix": "krane"},
            "push": {
                "max_concurrent": 3,
                "skip_existing": False,
                "platform": "",
                "timeout": 0,  # Deadline for the whole push run in seconds, 0 = none
            },
            "skopeo": {
                "binary": "skopeo",
                "dest_tls_verify": True,
                "src_authfile": "",
                "copy_timeout": 0,  # Per-image copy timeout in seconds, 0 = none
            },
            "aws": {"connect_timeout": 10, "read_timeout": 60},
            "kubernetes": {"kubeconfig": ""},
            "logging": {"level": "INFO"},
            "output": {"dir": "reports"},
        }

        if not os.path.exists(self.config_file):
            logging.debug(f"Config file {self.config_file} not found, using defaults")
            return default_config

        try:
            with open(self.config_file, "r") as f:
                user_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigValidationError(f"Error loading config file {self.config_file}: {e}") from e
        if not isinstance(user_config, dict):
            raise ConfigValidationError(f"Config file {self.config_file} must contain a mapping")
        return self._merge_config(default_config, user_config)

    def _merge_config(self, default: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge user config with defaults"""
        result = default.copy()
        for key, value in user.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    @staticmethod
    def _as_int(value: Any, name: str) -> int:
        try:
            return int(value)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"{name} must be an integer, got: {value} (type: {type(value).__name__})"
            )

    @staticmethod
    def _as_bool(value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() in ("true", "1", "yes")
        return bool(value)

    # ECR configuration
    def get_region(self) -> str:
        """Get AWS region from environment or config"""
        return (
            os.environ.get("AWS_REGION")
            or os.environ.get("AWS_DEFAULT_REGION")
            or self.config["ecr"]["region"]
        )

    def get_prefix(self) -> str:
        """Get ECR repository prefix from environment or config"""
        return os.environ.get("KRANE_PREFIX") or self.config["ecr"]["prefix"]

    # Push configuration
    def get_max_concurrent(self) -> int:
        """Get max concurrent transfers, with type coercion"""
        value = os.environ.get("KRANE_MAX_CONCURRENT") or self.config["push"]["max_concurrent"]
        return self._as_int(value, "push.max_concurrent")

    def get_skip_existing(self) -> bool:
        return self._as_bool(self.config["push"]["skip_existing"])

    def get_platform(self) -> str:
        return self.config["push"]["platform"] or ""

    def get_push_timeout(self) -> int:
        """Get push deadline in seconds (0 = no deadline)"""
        return self._as_int(self.config["push"]["timeout"], "push.timeout")

    # Skopeo configuration
    def get_skopeo_binary(self) -> str:
        return os.environ.get("SKOPEO_BINARY") or self.config["skopeo"]["binary"]

    def get_dest_tls_verify(self) -> bool:
        return self._as_bool(self.config["skopeo"]["dest_tls_verify"])

    def get_src_authfile(self) -> Optional[str]:
        return self.config["skopeo"]["src_authfile"] or None

    def get_copy_timeout(self) -> int:
        return self._as_int(self.config["skopeo"]["copy_timeout"], "skopeo.copy_timeout")

    # AWS configuration
    def get_aws_timeouts(self) -> Tuple[int, int]:
        """Get (connect_timeout, read_timeout) for AWS API calls"""
        aws = self.config["aws"]
        return (
            self._as_int(aws["connect_timeout"], "aws.connect_timeout"),
            self._as_int(aws["read_timeout"], "aws.read_timeout"),
        )

    # Kubernetes configuration
    def get_kubeconfig(self) -> Optional[str]:
        return os.environ.get("KUBECONFIG") or self.config["kubernetes"]["kubeconfig"] or None

    # Logging / output configuration
    def get_log_level(self) -> str:
        return os.environ.get("KRANE_LOG_LEVEL") or str(self.config["logging"]["level"])

    def get_output_dir(self) -> str:
        return self.config["output"]["dir"]

    def validate_config(self) -> None:
        """Validate configuration values

        Raises:
            ConfigValidationError: If configuration is invalid
        """
        errors = []
        warnings = []

        region = self.get_region()
        if not region or not str(region).strip():
            errors.append("ecr.region is required and cannot be empty")

        prefix = self.get_prefix()
        if not prefix or not is_valid_repository_name(prefix):
            errors.append(
                f"ecr.prefix '{prefix}' is not a valid ECR repository name "
                f"(lowercase alphanumerics separated by '.', '_', '-' or '/')"
            )

        try:
            max_concurrent = self.get_max_concurrent()
            if max_concurrent < 1:
                errors.append(f"push.max_concurrent must be a positive integer, got: {max_concurrent}")
            elif max_concurrent > 50:
                warnings.append(f"push.max_concurrent is very high ({max_concurrent}), expect registry throttling")
        except ConfigValidationError as e:
            errors.append(str(e))

        for getter in (self.get_push_timeout, self.get_copy_timeout):
            try:
                value = getter()
                if value < 0:
                    errors.append(f"timeouts must be non-negative, got: {value}")
            except ConfigValidationError as e:
                errors.append(str(e))

        try:
            parse_platform(self.get_platform())
        except InvalidPlatformError as e:
            errors.append(f"push.platform: {e}")

        for warning in warnings:
            logging.warning(f"Configuration warning: {warning}")

        if errors:
            error_msg = "Configuration validation failed:\n  " + "\n  ".join(errors)
            logging.error(error_msg)
            raise ConfigValidationError(error_msg)


@dataclass(frozen=True)
class DiscoveryOptions:
    """Where to look for images and which to keep"""
    namespace: str = ""
    all_namespaces: bool = False
    include_namespaces: Tuple[str, ...] = ()
    exclude_namespaces: Tuple[str, ...] = ()
    include_patterns: Tuple[str, ...] = ()
    exclude_patterns: Tuple[str, ...] = ()

    @property
    def effective_all_namespaces(self) -> bool:
        """An empty namespace means every namespace."""
        return self.all_namespaces or not self.namespace.strip()


@dataclass(frozen=True)
class ListOptions:
    discovery: DiscoveryOptions = field(default_factory=DiscoveryOptions)
    output_format: str = "table"
    show_sources: bool = False

    def validate(self) -> None:
        if self.output_format not in VALID_OUTPUT_FORMATS:
            raise ConfigValidationError(
                f"invalid format: {self.output_format} (valid: {', '.join(VALID_OUTPUT_FORMATS)})"
            )


@dataclass(frozen=True)
class PushOptions:
    """Everything a push run needs, fixed before the run starts"""
    discovery: DiscoveryOptions = field(default_factory=DiscoveryOptions)
    region: str = "eu-west-1"
    prefix: str = "krane"
    dry_run: bool = False
    platform: str = ""
    skip_existing: bool = False
    max_concurrent: int = 3
    timeout: int = 0
    report_path: Optional[str] = None

    def validate(self) -> None:
        """Check values that must be sane before any remote call.

        Raises:
            ConfigValidationError: On the first invalid value
        """
        if self.max_concurrent < 1:
            raise ConfigValidationError(f"--max-concurrent must be at least 1, got: {self.max_concurrent}")
        if self.timeout < 0:
            raise ConfigValidationError(f"--timeout must be non-negative, got: {self.timeout}")
        if not is_valid_repository_name(self.prefix):
            raise ConfigValidationError(f"--prefix '{self.prefix}' is not a valid ECR repository name")
        try:
            parse_platform(self.platform)
        except InvalidPlatformError as e:
            raise ConfigValidationError(f"--platform: {e}") from e
