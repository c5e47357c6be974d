"""Cluster topology resolution.

Addresses are ``user@ip`` strings. The IP is everything after the first ``@``.
An address without ``@`` is rejected rather than treated as a bare IP: the
remote channel always logs in as an explicit user.
"""
import logging
from typing import Iterable, Tuple

from ..config import ProvisioningOptions
from ..errors import MalformedAddressError
from .models import ClusterTopology, Host

logger = logging.getLogger("rackctl.topology")


def parse_host(address: str) -> Host:
    """Parse a ``user@ip`` address into a Host.

    Raises:
        MalformedAddressError: If there is no ``@``, or either side is empty.
    """
    address = (address or "").strip()
    if "@" not in address:
        raise MalformedAddressError(address)
    user, ip = address.split("@", 1)
    if not user:
        raise MalformedAddressError(address, "empty user")
    if not ip:
        raise MalformedAddressError(address, "empty ip")
    return Host(address=address, user=user, ip=ip)


def detect_master(master_address: str) -> Host:
    master = parse_host(master_address)
    logger.info(f"KUBE_MASTER: {master.address}")
    logger.info(f"KUBE_MASTER_IP: {master.ip}")
    return master


def detect_nodes(node_addresses: Iterable[str]) -> Tuple[Host, ...]:
    nodes = tuple(parse_host(address) for address in node_addresses)
    logger.info(f"KUBE_NODE_IP_ADDRESSES: [{' '.join(n.ip for n in nodes)}]")
    return nodes


def resolve_topology(options: ProvisioningOptions) -> ClusterTopology:
    """Resolve the master and nodes configured in ``options``."""
    return ClusterTopology(
        master=detect_master(options.master),
        nodes=detect_nodes(options.nodes),
    )
