"""Configuration loader with YAML support and environment variable substitution."""

import copy
import os
import re
from typing import Any, Dict
from urllib.parse import urlparse

import yaml

from blockshare.models import AddressingStyle, StorageProvider

DEFAULT_CONFIG: Dict[str, Any] = {
    'kernel': {
        'base_url': 'http://127.0.0.1:6806',
        'token': '',
        'timeout': 20,
    },
    'share': {
        'server_url': '',
        'api_token': '',
        'default_expire_days': 7,
        'default_public': True,
        'timeout': 30,
    },
    'storage': {
        'enabled': False,
        'provider': 'aws',
        'addressing': 'auto',
        'path_prefix': 'siyuan-share',
        'timeout': 60,
        'max_retries': 2,
        'asset_prefixes': ['assets/', '/assets/'],
    },
    'resolver': {
        'max_depth': 5,
        'max_workers': 4,
        'fetch_timeout': 10,
    },
    'cache': {
        'ttl_seconds': 60,
    },
    'records': {
        'directory': './.blockshare',
    },
    'logging': {},
}


class ConfigLoader:
    """Handles loading and validation of configuration files."""

    ENV_VAR_PATTERN = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)\}')

    @classmethod
    def load(cls, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from YAML file, layered over the defaults.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            Parsed configuration dictionary

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If the file is not a YAML mapping
        """
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}

        if not isinstance(config_data, dict):
            raise ValueError("Configuration file must contain a dictionary")

        config_data = cls._substitute_env_vars_recursive(config_data)
        return cls.with_defaults(config_data)

    @classmethod
    def with_defaults(cls, config: Dict[str, Any]) -> Dict[str, Any]:
        """Return ``config`` merged section by section over the defaults."""
        merged = copy.deepcopy(DEFAULT_CONFIG)
        for section, values in config.items():
            if isinstance(values, dict) and isinstance(merged.get(section), dict):
                merged[section].update(values)
            else:
                merged[section] = values
        return merged

    @classmethod
    def validate(cls, config: Dict[str, Any]) -> None:
        """
        Validate configuration for required fields and correct values.

        Args:
            config: Configuration dictionary to validate

        Raises:
            ValueError: If validation fails
        """
        cls._validate_required_field(config, 'kernel.base_url')
        cls._validate_url(get_nested(config, 'kernel.base_url'), 'kernel.base_url')

        cls._validate_required_field(config, 'share.server_url')
        cls._validate_required_field(config, 'share.api_token')
        cls._validate_url(get_nested(config, 'share.server_url'), 'share.server_url')

        expire_days = get_nested(config, 'share.default_expire_days', 7)
        if not isinstance(expire_days, int) or not 1 <= expire_days <= 365:
            raise ValueError("share.default_expire_days must be an integer between 1 and 365")

        if get_nested(config, 'storage.enabled', False):
            for field_name in ('endpoint', 'region', 'bucket', 'access_key_id', 'secret_access_key'):
                cls._validate_required_field(config, f'storage.{field_name}')

            provider = get_nested(config, 'storage.provider', 'aws')
            if provider not in [p.value for p in StorageProvider]:
                raise ValueError(
                    f"storage.provider must be one of: {[p.value for p in StorageProvider]}"
                )

            addressing = get_nested(config, 'storage.addressing', 'auto')
            if addressing not in [a.value for a in AddressingStyle]:
                raise ValueError(
                    f"storage.addressing must be one of: {[a.value for a in AddressingStyle]}"
                )

            custom_domain = get_nested(config, 'storage.custom_domain')
            if custom_domain:
                cls._validate_url(custom_domain, 'storage.custom_domain')

            prefixes = get_nested(config, 'storage.asset_prefixes', [])
            if not isinstance(prefixes, list) or not all(isinstance(p, str) and p for p in prefixes):
                raise ValueError("storage.asset_prefixes must be a list of non-empty strings")

        for path in ('kernel.timeout', 'storage.timeout', 'resolver.fetch_timeout', 'cache.ttl_seconds'):
            value = get_nested(config, path)
            if value is not None and (not isinstance(value, (int, float)) or value <= 0):
                raise ValueError(f"{path} must be a positive number")

        for path in ('resolver.max_depth', 'resolver.max_workers'):
            value = get_nested(config, path)
            if value is not None and (not isinstance(value, int) or value < 1):
                raise ValueError(f"{path} must be a positive integer")

    @classmethod
    def merge_with_args(cls, config: Dict[str, Any], args) -> Dict[str, Any]:
        """
        Merge configuration with CLI arguments. CLI arguments take precedence.

        Args:
            config: Base configuration dictionary
            args: Parsed CLI arguments

        Returns:
            Merged configuration dictionary
        """
        merged = copy.deepcopy(config)
        for section in ('kernel', 'share', 'storage', 'logging'):
            merged.setdefault(section, {})

        if getattr(args, 'kernel_url', None):
            merged['kernel']['base_url'] = args.kernel_url

        if getattr(args, 'server_url', None):
            merged['share']['server_url'] = args.server_url

        if getattr(args, 'no_assets', False):
            merged['storage']['enabled'] = False

        if getattr(args, 'log_file', None):
            merged['logging']['file'] = args.log_file

        if getattr(args, 'log_level', None):
            merged['logging']['level'] = args.log_level

        return merged

    @classmethod
    def _substitute_env_vars_recursive(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {key: cls._substitute_env_vars_recursive(value) for key, value in data.items()}
        elif isinstance(data, list):
            return [cls._substitute_env_vars_recursive(item) for item in data]
        elif isinstance(data, str):
            return cls._substitute_env_vars(data)
        return data

    @classmethod
    def _substitute_env_vars(cls, value: str) -> str:
        def replace_match(match):
            env_value = os.getenv(match.group(1))
            return env_value if env_value is not None else match.group(0)

        return cls.ENV_VAR_PATTERN.sub(replace_match, value)

    @staticmethod
    def _validate_required_field(config: dict, field: str) -> None:
        """Validate that a required field exists and has a value."""
        value = get_nested(config, field)
        if value is None or value == '':
            raise ValueError(f"Missing required configuration: {field}")

        if isinstance(value, str) and '${' in value:
            match = ConfigLoader.ENV_VAR_PATTERN.search(value)
            var_name = match.group(1) if match else value
            raise ValueError(
                f"Configuration field '{field}' contains unsubstituted environment variable: {value}. "
                f"Please set the {var_name} environment variable or provide a value in config file."
            )

    @staticmethod
    def _validate_url(url: str, field_name: str) -> None:
        parsed = urlparse(url)
        if parsed.scheme not in ('http', 'https'):
            raise ValueError(f"{field_name} must use http or https scheme: {url}")
        if not parsed.netloc:
            raise ValueError(f"{field_name} missing hostname: {url}")


def get_nested(config: dict, path: str, default: Any = None) -> Any:
    """Safely retrieve nested configuration values using dot notation.

    Args:
        config: Configuration dictionary
        path: Dot-separated path (e.g., "storage.bucket")
        default: Default value if path doesn't exist

    Returns:
        Value at the nested path or default
    """
    value = config
    for key in path.split('.'):
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value


__all__ = ['ConfigLoader', 'get_nested', 'DEFAULT_CONFIG']
