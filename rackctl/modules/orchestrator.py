"""Cluster bring-up orchestration.

Bring-up is fatal on the first error: identity check, topology, master, then
each node in configured order, then client config. Node provisioning can fan
out over a bounded thread pool when ``node_parallelism`` is above 1; the
master is always finished first and the first node failure cancels every node
not yet started.
"""
import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import IO, Callable, Dict, List, Optional

from ..config import ProvisioningOptions
from .agent import SSHAgent, verify_prereqs
from .kubeconfig import create_kubeconfig, load_or_generate_basic_auth, server_url
from .models import (
    BringUpReport, ClusterHealth, ClusterTopology, DaemonProbeResult, Host, LifecycleResult, NodeRole,
)
from .provision import HostProvisioner, ReadinessHook
from .ssh import SSHChannel
from .topology import resolve_topology
from .troubleshoot import Troubleshooter
from .validate import ClusterValidator

logger = logging.getLogger("rackctl.orchestrator")


class ClusterOrchestrator:
    """Entry point for every cluster lifecycle operation."""

    def __init__(
        self,
        options: ProvisioningOptions,
        channel: Optional[SSHChannel] = None,
        agent_factory: Callable[[], SSHAgent] = SSHAgent,
        prereq_check: Callable[[], None] = verify_prereqs,
        readiness_hook: Optional[ReadinessHook] = None,
        validation_runner: Optional[Callable] = None,
        out: Optional[IO[str]] = None,
    ):
        """Initialize the orchestrator.

        Args:
            options: Provisioning options for this run
            channel: Remote channel (default: ``SSHChannel`` with the configured timeout)
            agent_factory: Builds the scoped ssh-agent wrapper
            prereq_check: Verifies local tools before anything else runs
            readiness_hook: Called after each daemon start
            validation_runner: ``subprocess.run`` compatible runner for the validation routine
            out: Stream for troubleshooting tables (default: stdout)
        """
        self.options = options
        self.channel = channel or SSHChannel(timeout=options.command_timeout)
        self.agent_factory = agent_factory
        self.prereq_check = prereq_check
        self.readiness_hook = readiness_hook
        self.provisioner = HostProvisioner(self.channel, options, readiness_hook=readiness_hook)
        self.validation_runner = validation_runner
        self.out = out
        self.diagnostics: Dict[str, List[DaemonProbeResult]] = {}

    def with_options(self, **updates) -> 'ClusterOrchestrator':
        """A copy of this orchestrator with some options replaced and the same collaborators."""
        return ClusterOrchestrator(
            self.options.model_copy(update=updates),
            channel=self.channel,
            agent_factory=self.agent_factory,
            prereq_check=self.prereq_check,
            readiness_hook=self.readiness_hook,
            validation_runner=self.validation_runner,
            out=self.out,
        )

    def topology(self) -> ClusterTopology:
        return resolve_topology(self.options)

    def bring_up(self) -> BringUpReport:
        """Provision the whole cluster and write the client config.

        Raises:
            PrerequisiteError: If local OpenSSH tools are missing
            NoIdentityError: If no SSH identity can be made available
            MalformedAddressError: If an address is not ``user@ip``
            RemoteExecutionError: If any remote step fails
            TransferError: If staging artifacts fails
        """
        self.prereq_check()
        with self.agent_factory() as agent:
            identity = agent.ensure_identity()

            topology = self.topology()
            self.provisioner.provision_master(topology.master)
            self._provision_nodes(topology)

            server = server_url(topology.master.ip)
            auth = load_or_generate_basic_auth(self.options.kubeconfig, self.options.context)
            kubeconfig = create_kubeconfig(self.options.kubeconfig, self.options.context, server, auth)

        logger.info(f"🎉 Cluster is up: {server} ({len(topology.nodes)} node(s))")
        return BringUpReport(
            topology=topology,
            identity=identity,
            server=server,
            kubeconfig=kubeconfig,
            context=self.options.context,
            auth=auth,
        )

    def _provision_nodes(self, topology: ClusterTopology) -> None:
        nodes = topology.nodes
        workers = min(self.options.node_parallelism, len(nodes))
        if workers <= 1:
            for node in nodes:
                self.provisioner.provision_node(node, topology.master)
            return

        logger.info(f"Provisioning {len(nodes)} nodes with {workers} workers")
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="provision")
        try:
            future_to_node = {
                executor.submit(self.provisioner.provision_node, node, topology.master): node
                for node in nodes
            }
            done, _ = wait(future_to_node, return_when=FIRST_EXCEPTION)
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

        # Nodes already running when the first one failed have finished by now
        first_error: Optional[BaseException] = None
        for future, node in future_to_node.items():
            if future.cancelled() or future.exception() is None:
                continue
            logger.error(f"❌ Provisioning failed on {node}: {future.exception()}")
            if future in done and first_error is None:
                first_error = future.exception()
        if first_error is not None:
            raise first_error

    def validate(self) -> ClusterHealth:
        """Validate the cluster, printing troubleshooting tables on failure.

        Per-host probe results of a failed validation are kept in ``diagnostics``.
        """
        topology = self.topology()
        kwargs = {}
        if self.validation_runner is not None:
            kwargs['runner'] = self.validation_runner
        validator = ClusterValidator(
            self.options,
            topology,
            Troubleshooter(self.channel, out=self.out),
            **kwargs,
        )
        health = validator.validate()
        self.diagnostics = validator.diagnostics
        return health

    def troubleshoot(self, host: Host, role: NodeRole) -> List[DaemonProbeResult]:
        return Troubleshooter(self.channel, out=self.out).troubleshoot(host, role)

    def _not_supported(self, operation: str) -> LifecycleResult:
        logger.warning(f"⚠️  {operation} is not supported by this provider")
        return LifecycleResult.NOT_SUPPORTED

    def tear_down(self) -> LifecycleResult:
        return self._not_supported("Cluster teardown")

    def push(self) -> LifecycleResult:
        return self._not_supported("Cluster update")

    def prepare_push(self) -> LifecycleResult:
        return self._not_supported("Update preparation")

    def push_master(self) -> LifecycleResult:
        return self._not_supported("Master update")

    def push_node(self) -> LifecycleResult:
        return self._not_supported("Node update")

    def test_build_release(self) -> LifecycleResult:
        return self._not_supported("Test release build")

    def test_setup(self) -> LifecycleResult:
        return self._not_supported("Test setup")

    def test_teardown(self) -> LifecycleResult:
        return self._not_supported("Test teardown")
