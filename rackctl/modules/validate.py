"""Cluster validation with troubleshooting fallback."""
import logging
import os
import subprocess
from typing import Callable, Dict, List, Optional

from ..config import ProvisioningOptions
from .models import ClusterHealth, ClusterTopology, DaemonProbeResult, NodeRole
from .troubleshoot import Troubleshooter

logger = logging.getLogger("rackctl.validate")


class ClusterValidator:
    """Runs the external validation routine and diagnoses failures.

    The routine is invoked without arguments; it finds the cluster through
    ``KUBECONFIG``, ``KUBE_CONTEXT`` and ``NUM_NODES`` in its environment and
    reports success with exit status 0.
    """

    def __init__(
        self,
        options: ProvisioningOptions,
        topology: ClusterTopology,
        troubleshooter: Troubleshooter,
        runner: Callable = subprocess.run,
    ):
        self.options = options
        self.topology = topology
        self.troubleshooter = troubleshooter
        self._runner = runner
        self.state = ClusterHealth.VALIDATING
        # host address -> probe results, filled when validation fails
        self.diagnostics: Dict[str, List[DaemonProbeResult]] = {}

    def _environment(self) -> Dict[str, str]:
        env = dict(os.environ)
        env.update({
            'KUBECONFIG': str(self.options.kubeconfig),
            'KUBE_CONTEXT': self.options.context,
            'NUM_NODES': str(len(self.topology.nodes)),
        })
        return env

    def check(self) -> ClusterHealth:
        """Run the validation routine once, without diagnostics."""
        command = list(self.options.validate_command)
        logger.info(f"🔍 Validating cluster: {' '.join(command)}")
        try:
            result = self._runner(command, env=self._environment())
            returncode: Optional[int] = result.returncode
        except OSError as e:
            logger.error(f"❌ Could not run validation command: {e}")
            returncode = None

        if returncode == 0:
            return ClusterHealth.HEALTHY
        logger.error(f"❌ Cluster validation failed (exit status {returncode})")
        return ClusterHealth.UNHEALTHY

    def validate(self) -> ClusterHealth:
        """Validate, and troubleshoot the master and every node on failure."""
        self.state = ClusterHealth.VALIDATING
        self.diagnostics = {}
        self.state = self.check()
        if self.state == ClusterHealth.UNHEALTHY:
            master = self.topology.master
            self.diagnostics[master.address] = self.troubleshooter.troubleshoot(master, NodeRole.MASTER)
            for node in self.topology.nodes:
                self.diagnostics[node.address] = self.troubleshooter.troubleshoot(node, NodeRole.NODE)
        else:
            logger.info("✅ Cluster validation succeeded")
        return self.state
