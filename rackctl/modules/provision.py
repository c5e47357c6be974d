"""Master and node provisioning.

Both roles follow the same shape: stage artifacts, install, start daemons.
Daemons are started one remote call at a time in a fixed order:

- master: etcd, apiserver, controller-manager, scheduler
- node: flannel, docker, kubelet, proxy

Each daemon needs the previous one reachable, but nothing waits for
readiness: a start is complete once its script returns. A readiness hook can
be injected to poll between starts.
"""
import logging
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from ..config import ProvisioningOptions
from .models import Host, NodeRole
from .ssh import RemotePath, ShellStep, SSHChannel

logger = logging.getLogger("rackctl.provision")

INSTALL_ROOT = '/opt/kubernetes'
INSTALL_BIN_DIR = f'{INSTALL_ROOT}/bin'
INSTALL_CFG_DIR = f'{INSTALL_ROOT}/cfg'

ReadinessHook = Callable[[Host, str], None]


@dataclass(frozen=True)
class DaemonStart:
    """Start script invocation for one daemon: ``sudo bash <staging>/<role>/scripts/<script> args...``"""
    name: str
    role: NodeRole
    script: str
    args: Tuple[str, ...] = ()

    def step(self, kube_temp: str) -> ShellStep:
        script_path = RemotePath(f"{kube_temp.rstrip('/')}/{self.role.value}/scripts/{self.script}")
        return ShellStep.of('bash', script_path, *self.args, sudo=True)


def certificate_sans(master_ip: str, service_ip: str) -> str:
    """Subject Alternative Names for the apiserver certificate."""
    return ','.join([
        f'IP:{master_ip}',
        f'IP:{service_ip}',
        'DNS:kubernetes',
        'DNS:kubernetes.default',
        'DNS:kubernetes.default.svc',
        'DNS:kubernetes.default.svc.cluster.local',
    ])


def master_daemons(options: ProvisioningOptions, master: Host) -> List[DaemonStart]:
    return [
        DaemonStart('etcd', NodeRole.MASTER, 'etcd.sh'),
        DaemonStart('kube-apiserver', NodeRole.MASTER, 'apiserver.sh', (
            master.ip,
            options.etcd_servers,
            options.service_cluster_ip_range,
            ','.join(options.admission_control),
        )),
        DaemonStart('kube-controller-manager', NodeRole.MASTER, 'controller-manager.sh', (master.ip,)),
        DaemonStart('kube-scheduler', NodeRole.MASTER, 'scheduler.sh', (master.ip,)),
    ]


def node_daemons(options: ProvisioningOptions, master: Host, node: Host) -> List[DaemonStart]:
    return [
        DaemonStart('flannel', NodeRole.NODE, 'flannel.sh', (options.etcd_servers, options.flannel_net)),
        DaemonStart('docker', NodeRole.NODE, 'docker.sh', (options.docker_opts,)),
        DaemonStart('kubelet', NodeRole.NODE, 'kubelet.sh', (master.ip, node.ip)),
        DaemonStart('kube-proxy', NodeRole.NODE, 'proxy.sh', (master.ip,)),
    ]


class HostProvisioner:
    """Brings a single host's daemons up through an ``SSHChannel``."""

    def __init__(
        self,
        channel: SSHChannel,
        options: ProvisioningOptions,
        readiness_hook: Optional[ReadinessHook] = None,
    ):
        self.channel = channel
        self.options = options
        self.readiness_hook = readiness_hook

    @property
    def kube_temp(self) -> RemotePath:
        return RemotePath(self.options.kube_temp)

    def _artifact(self, *parts: str) -> Path:
        return self.options.artifact_dir.joinpath(*parts)

    def ensure_setup_dir(self, host: Host) -> None:
        """Create the staging directory and the install directories."""
        self.channel.run_steps(host, [
            ShellStep.of('mkdir', '-p', self.kube_temp),
            ShellStep.of('mkdir', '-p', INSTALL_BIN_DIR, sudo=True),
            ShellStep.of('mkdir', '-p', INSTALL_CFG_DIR, sudo=True),
        ])

    def _stage(self, host: Host, sources: List[Path]) -> None:
        sources = sources + list(self.options.config_files)
        self.channel.copy_paths(host, sources, self.options.kube_temp, recursive=True)

    def _start_daemons(self, host: Host, daemons: List[DaemonStart]) -> None:
        for daemon in daemons:
            logger.info(f"▶️  Starting {daemon.name} on {host}")
            self.channel.run_steps(host, [daemon.step(self.options.kube_temp)])
            if self.readiness_hook is not None:
                self.readiness_hook(host, daemon.name)

    def provision_master(self, master: Host) -> None:
        """Stage, install and start the control plane on ``master``.

        Raises:
            RemoteExecutionError: If a remote step fails
            TransferError: If staging fails
        """
        logger.info(f"🚀 Provision master on {master}")
        self.ensure_setup_dir(master)
        self._stage(master, [
            self._artifact('make-ca-cert.sh'),
            self._artifact('binaries', 'master'),
            self._artifact('master'),
        ])

        kube_temp = self.options.kube_temp.rstrip('/')
        self.channel.run_steps(master, [
            ShellStep.of('cp', '-r', RemotePath(f'{kube_temp}/master/bin'), INSTALL_ROOT, sudo=True),
            ShellStep.of('chmod', '-R', '+x', INSTALL_BIN_DIR, sudo=True),
            ShellStep.of(
                'bash', RemotePath(f'{kube_temp}/make-ca-cert.sh'),
                master.ip,
                certificate_sans(master.ip, self.options.service_ip),
                sudo=True,
            ),
        ])

        self._start_daemons(master, master_daemons(self.options, master))
        logger.info(f"✅ Master {master} provisioned")

    def provision_node(self, node: Host, master: Host) -> None:
        """Stage, install and start the node daemons on ``node``.

        Raises:
            RemoteExecutionError: If a remote step fails
            TransferError: If staging fails
        """
        logger.info(f"🚀 Provision node on {node}")
        self.ensure_setup_dir(node)
        self._stage(node, [
            self._artifact('binaries', 'node'),
            self._artifact('node'),
        ])

        self.channel.run_steps(node, [
            ShellStep.raw(f"sudo curl -fsSL {shlex.quote(self.options.docker_install_url)} | sh"),
        ])

        kube_temp = self.options.kube_temp.rstrip('/')
        self.channel.run_steps(node, [
            ShellStep.of('cp', '-r', RemotePath(f'{kube_temp}/node/bin'), INSTALL_ROOT, sudo=True),
            ShellStep.of('cp', '/bin/docker', INSTALL_BIN_DIR, sudo=True),
            ShellStep.of('chmod', '-R', '+x', INSTALL_BIN_DIR, sudo=True),
        ])

        self._start_daemons(node, node_daemons(self.options, master, node))
        logger.info(f"✅ Node {node} provisioned")
