"""Data models for cluster provisioning."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple


class NodeRole(str, Enum):
    """Host roles in the cluster."""
    MASTER = 'master'
    NODE = 'node'


class IdentityOutcome(str, Enum):
    """Result of the SSH identity ladder."""
    ALREADY_AVAILABLE = 'already_available'
    RECOVERED_BY_ADD = 'recovered_by_add'
    UNRECOVERABLE = 'unrecoverable'


class ClusterHealth(str, Enum):
    """Validation states."""
    VALIDATING = 'validating'
    HEALTHY = 'healthy'
    UNHEALTHY = 'unhealthy'


class LifecycleResult(str, Enum):
    """Outcome of a lifecycle operation."""
    COMPLETED = 'completed'
    NOT_SUPPORTED = 'not_supported'


@dataclass(frozen=True)
class Host:
    """A remotely addressable machine, ``user@ip``."""
    address: str
    user: str
    ip: str

    def __str__(self) -> str:
        return self.address


@dataclass(frozen=True)
class ClusterTopology:
    """The master and the ordered nodes of one run."""
    master: Host
    nodes: Tuple[Host, ...] = ()

    @property
    def hosts(self) -> Tuple[Host, ...]:
        return (self.master,) + self.nodes

    def to_dict(self) -> Dict[str, Any]:
        return {
            'master': {'address': self.master.address, 'ip': self.master.ip},
            'nodes': [{'address': n.address, 'ip': n.ip} for n in self.nodes],
        }


@dataclass(frozen=True)
class DaemonProbeResult:
    """Liveness of one daemon on one host."""
    daemon: str
    active: bool

    @property
    def status(self) -> str:
        return 'active' if self.active else 'inactive'


@dataclass(frozen=True)
class BasicAuth:
    """Basic-auth credentials written to the client config."""
    user: str
    password: str


@dataclass
class BringUpReport:
    """What a successful bring-up produced."""
    topology: ClusterTopology
    identity: IdentityOutcome
    server: str
    kubeconfig: Path
    context: str
    auth: Optional[BasicAuth] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'topology': self.topology.to_dict(),
            'identity': self.identity.value,
            'server': self.server,
            'kubeconfig': str(self.kubeconfig),
            'context': self.context,
            'user': self.auth.user if self.auth else None,
            'password': self.auth.password if self.auth else None,
            **self.metadata,
        }
