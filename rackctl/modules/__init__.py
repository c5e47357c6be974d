"""
Cluster provisioning modules.
"""
from .models import ClusterHealth, ClusterTopology, Host, IdentityOutcome, LifecycleResult, NodeRole
from .orchestrator import ClusterOrchestrator
from .ssh import SSHChannel
from .topology import detect_master, detect_nodes, resolve_topology

__all__ = [
    'ClusterHealth',
    'ClusterTopology',
    'ClusterOrchestrator',
    'Host',
    'IdentityOutcome',
    'LifecycleResult',
    'NodeRole',
    'SSHChannel',
    'detect_master',
    'detect_nodes',
    'resolve_topology',
]
