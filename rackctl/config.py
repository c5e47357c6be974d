"""Configuration management for the rackctl application.

Two layers live here:

- ``Config``: process-level settings (logging, API key, redaction) read from
  the environment once at import time.
- ``ProvisioningOptions``: the immutable option bag for one orchestration run,
  loaded with the following precedence:

  1. Explicitly passed overrides
  2. Environment variables (including a ``.env`` file)
  3. A YAML configuration file
  4. Default values
"""
import ipaddress
import logging
import os
import shlex
import sys
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ConfigurationError

logger = logging.getLogger("rackctl.config")

# Load environment variables from .env file if it exists
load_dotenv()


class Config:
    """Application configuration with sensible defaults."""

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT: str = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    LOG_FILE: Optional[str] = os.getenv("RACKCTL_LOG_FILE") or None

    # API
    API_KEY: str = os.getenv("RACKCTL_API_KEY", "rackctl-secret")
    API_HOST: str = os.getenv("RACKCTL_API_HOST", "127.0.0.1")
    API_PORT: int = int(os.getenv("RACKCTL_API_PORT", "8000"))

    # Default options file for the API and the CLI
    CONFIG_FILE: Optional[str] = os.getenv("RACKCTL_CONFIG") or None

    # Security
    REDACT_KEYS: tuple = ("password", "secret", "token", "api_key")


DEFAULT_ADMISSION_CONTROL = [
    "NamespaceLifecycle",
    "NamespaceExists",
    "LimitRanger",
    "SecurityContextDeny",
    "ServiceAccount",
    "ResourceQuota",
]

# Environment variable -> option field
ENV_VARS: Dict[str, str] = {
    "MASTER": "master",
    "NODES": "nodes",
    "ETCD_SERVERS": "etcd_servers",
    "SERVICE_CLUSTER_IP_RANGE": "service_cluster_ip_range",
    "ADMISSION_CONTROL": "admission_control",
    "FLANNEL_NET": "flannel_net",
    "DOCKER_OPTS": "docker_opts",
    "KUBE_TEMP": "kube_temp",
    "KUBE_ARTIFACT_DIR": "artifact_dir",
    "KUBECONFIG": "kubeconfig",
    "KUBE_CONTEXT": "context",
    "KUBE_VALIDATE_COMMAND": "validate_command",
    "NODE_PARALLELISM": "node_parallelism",
    "SSH_COMMAND_TIMEOUT": "command_timeout",
}


def _default_validate_command() -> List[str]:
    return [sys.executable, "-m", "rackctl.modules.health"]


class ProvisioningOptions(BaseModel):
    """Options threaded through one bring-up or validation run."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    master: str = Field(description="Master address, user@ip")
    nodes: List[str] = Field(default_factory=list, description="Node addresses, user@ip")
    etcd_servers: Optional[str] = Field(
        default=None,
        description="Comma separated etcd endpoints (default: http://<master ip>:4001)"
    )
    service_cluster_ip_range: str = Field(default="192.168.3.0/24")
    admission_control: List[str] = Field(default_factory=lambda: list(DEFAULT_ADMISSION_CONTROL))
    flannel_net: str = Field(default="172.16.0.0/16")
    docker_opts: str = Field(default="")
    kube_temp: str = Field(default="~/kube_temp", description="Remote staging directory")
    artifact_dir: Path = Field(
        default=Path("."),
        validate_default=True,
        description="Local directory holding binaries/ and role scripts"
    )
    config_files: List[Path] = Field(default_factory=list, description="Extra files staged on every host")
    docker_install_url: str = Field(default="https://get.docker.com/")
    kubeconfig: Path = Field(default=Path("~/.kube/config"), validate_default=True)
    context: str = Field(default="rackhd")
    validate_command: List[str] = Field(default_factory=_default_validate_command)
    node_parallelism: int = Field(default=1, ge=1)
    command_timeout: Optional[int] = Field(default=None, gt=0)

    @field_validator("nodes", mode="before")
    @classmethod
    def split_nodes(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return v.split()
        return v

    @field_validator("admission_control", mode="before")
    @classmethod
    def split_admission_control(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [p.strip() for p in v.split(",") if p.strip()]
        return v

    @field_validator("validate_command", mode="before")
    @classmethod
    def split_validate_command(cls, v: Any) -> Any:
        if isinstance(v, str):
            return shlex.split(v)
        return v

    @field_validator("master")
    @classmethod
    def master_not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("master address must not be empty")
        return v

    @field_validator("service_cluster_ip_range", "flannel_net")
    @classmethod
    def check_cidr(cls, v: str) -> str:
        ipaddress.ip_network(v, strict=False)
        return v

    @field_validator("kubeconfig", "artifact_dir")
    @classmethod
    def expand_user(cls, v: Path) -> Path:
        """Expand the user home directory in local paths."""
        return v.expanduser()

    @field_validator("validate_command")
    @classmethod
    def command_not_empty(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("validate_command must not be empty")
        return v

    @model_validator(mode="before")
    @classmethod
    def default_etcd_servers(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("etcd_servers") and data.get("master"):
            master_ip = str(data["master"]).strip().split("@", 1)[-1]
            data = dict(data, etcd_servers=f"http://{master_ip}:4001")
        return data

    @property
    def service_ip(self) -> str:
        """First usable address of the service range (the apiserver's service IP)."""
        network = ipaddress.ip_network(self.service_cluster_ip_range, strict=False)
        return str(network.network_address + 1)


def _load_config_file(path: Path) -> Dict[str, Any]:
    """Load options from a YAML file."""
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to load config from {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid config format in {path}: expected mapping, got {type(data).__name__}")
    return data


def _env_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    overrides = {}
    for var, field_name in ENV_VARS.items():
        value = environ.get(var)
        if value is None or value == "":
            continue
        overrides[field_name] = value
    return overrides


def load_options(
    config_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ProvisioningOptions:
    """Build the provisioning options for one run.

    Args:
        config_path: Optional YAML file. It is also staged on every host.
        overrides: Explicit values that win over everything else.
        environ: Environment to read (defaults to ``os.environ``).

    Returns:
        Validated, immutable options.

    Raises:
        ConfigurationError: If the file cannot be read or validation fails.
    """
    environ = os.environ if environ is None else environ
    config_path = config_path or Config.CONFIG_FILE

    data: Dict[str, Any] = {}
    if config_path:
        path = Path(config_path).expanduser().absolute()
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")
        data = _load_config_file(path)
        data["config_files"] = list(data.get("config_files") or []) + [path]
        logger.debug(f"Loaded options from {path}")

    data.update(_env_overrides(environ))
    data.update({k: v for k, v in (overrides or {}).items() if v is not None})

    if not data.get("master"):
        raise ConfigurationError("Missing required configuration: MASTER")

    try:
        return ProvisioningOptions(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid provisioning options: {e}") from e
