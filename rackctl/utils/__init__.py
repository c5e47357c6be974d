"""Utility functions and helpers for the rackctl application."""
import logging
import os
import secrets
import string
from typing import Any, Dict

import yaml

from ..config import Config

logger = logging.getLogger("rackctl.utils")


def generate_token(length: int = 16) -> str:
    """Generate a random alphanumeric token.

    Args:
        length: Length of the token to generate

    Returns:
        str: A random token string
    """
    chars = string.ascii_letters + string.digits
    return ''.join(secrets.choice(chars) for _ in range(length))


def write_yaml_file(path: str, data: Dict[str, Any], mode: int = 0o600) -> None:
    """Write a YAML file with the given data.

    Args:
        path: Path to the YAML file
        data: Data to write as YAML
        mode: File permissions (default: 0o600)

    Raises:
        OSError: If the file cannot be written
    """
    try:
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        os.chmod(path, mode)
    except OSError as e:
        logger.error(f"Failed to write YAML file {path}: {e}")
        raise


def read_yaml_file(path: str) -> Dict[str, Any]:
    """Read a YAML file and return its contents as a dictionary.

    Args:
        path: Path to the YAML file

    Returns:
        dict: The parsed YAML data

    Raises:
        FileNotFoundError: If the file does not exist
        yaml.YAMLError: If the file is not valid YAML
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.error(f"YAML file not found: {path}")
        raise
    except yaml.YAMLError as e:
        logger.error(f"Invalid YAML in {path}: {e}")
        raise


def redact_sensitive_data(data: Any) -> Any:
    """Recursively redact sensitive data from dictionaries and lists.

    Args:
        data: Input data that might contain sensitive information

    Returns:
        Data with sensitive values redacted
    """
    if isinstance(data, dict):
        return {
            k: "[REDACTED]" if any(
                redact_key.lower() in str(k).lower()
                for redact_key in Config.REDACT_KEYS
            ) else redact_sensitive_data(v)
            for k, v in data.items()
        }
    elif isinstance(data, (list, tuple)):
        return [redact_sensitive_data(item) for item in data]
    return data
