"""Default cluster validation routine.

Run as ``python -m rackctl.modules.health`` with no arguments. Reads
``KUBECONFIG``, ``KUBE_CONTEXT`` and ``NUM_NODES`` from the environment and
exits 0 once ``NUM_NODES`` nodes are Ready and every component is Healthy.
"""
import logging
import os
import sys
import time
from typing import Any, Dict, List, Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from ..logging import setup_logging

logger = logging.getLogger("rackctl.health")


def ready_nodes(api: client.CoreV1Api) -> List[str]:
    """Names of nodes whose Ready condition is True."""
    names = []
    for node in api.list_node().items:
        conditions = node.status.conditions or []
        if any(c.type == 'Ready' and c.status == 'True' for c in conditions):
            names.append(node.metadata.name)
    return names


def unhealthy_components(api: client.CoreV1Api) -> List[str]:
    """Names of control-plane components not reporting Healthy."""
    unhealthy = []
    for component in api.list_component_status().items:
        conditions = component.conditions or []
        if not any(c.type == 'Healthy' and c.status == 'True' for c in conditions):
            unhealthy.append(component.metadata.name)
    return unhealthy


def check_cluster(
    api: client.CoreV1Api,
    expected_nodes: int,
    attempts: int = 12,
    interval: float = 10.0,
    sleep=time.sleep,
) -> Dict[str, Any]:
    """Wait for the expected nodes, then check component health.

    Returns:
        dict: ``healthy`` flag, ready node names and any issues found
    """
    health: Dict[str, Any] = {'healthy': False, 'nodes': [], 'issues': []}

    for attempt in range(1, attempts + 1):
        try:
            health['nodes'] = ready_nodes(api)
        except ApiException as e:
            logger.debug(f"Listing nodes failed: {e}")
            health['nodes'] = []
        if len(health['nodes']) >= expected_nodes:
            break
        logger.info(f"⏳ {len(health['nodes'])}/{expected_nodes} nodes ready (attempt {attempt}/{attempts})")
        if attempt < attempts:
            sleep(interval)
    else:
        health['issues'].append(
            f"Only {len(health['nodes'])} of {expected_nodes} nodes are Ready"
        )
        return health

    try:
        bad = unhealthy_components(api)
    except ApiException as e:
        health['issues'].append(f"Component status check failed: {e.reason}")
        return health
    if bad:
        health['issues'].append(f"Unhealthy components: {', '.join(bad)}")
        return health

    health['healthy'] = True
    return health


def main(environ: Optional[Dict[str, str]] = None) -> int:
    environ = os.environ if environ is None else environ
    setup_logging()

    try:
        config.load_kube_config(
            config_file=environ.get('KUBECONFIG'),
            context=environ.get('KUBE_CONTEXT') or None,
        )
    except (ConfigException, OSError) as e:
        logger.error(f"❌ Failed to load kubeconfig: {e}")
        return 1

    health = check_cluster(
        client.CoreV1Api(),
        expected_nodes=int(environ.get('NUM_NODES', '0')),
        attempts=int(environ.get('VALIDATE_ATTEMPTS', '12')),
        interval=float(environ.get('VALIDATE_INTERVAL', '10')),
    )
    for issue in health['issues']:
        logger.error(f"❌ {issue}")
    if not health['healthy']:
        return 1
    logger.info(f"✅ Cluster is healthy ({len(health['nodes'])} nodes ready)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
