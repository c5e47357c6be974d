"""Per-host daemon liveness diagnostics."""
import logging
from typing import IO, List, Optional, Sequence

import typer

from ..errors import RackctlError
from .models import DaemonProbeResult, Host, NodeRole
from .ssh import ShellStep, SSHChannel

logger = logging.getLogger("rackctl.troubleshoot")

MASTER_REQUIRED_DAEMONS = ('kube-apiserver', 'kube-controller-manager', 'kube-scheduler')
NODE_REQUIRED_DAEMONS = ('kube-proxy', 'kubelet', 'docker', 'flannel')


def required_daemons(role: NodeRole) -> Sequence[str]:
    return MASTER_REQUIRED_DAEMONS if role == NodeRole.MASTER else NODE_REQUIRED_DAEMONS


def render_table(results: Sequence[DaemonProbeResult]) -> str:
    """Render probe results as an aligned ``PROCESS``/``STATUS`` table."""
    lines = ["%-24s %-10s " % ("PROCESS", "STATUS")]
    lines.extend("%-24s %s" % (r.daemon, r.status) for r in results)
    return "\n".join(lines) + "\n"


class Troubleshooter:
    """Asks systemd on a host whether each expected daemon is active."""

    def __init__(self, channel: SSHChannel, out: Optional[IO[str]] = None):
        self.channel = channel
        self.out = out

    def probe(self, host: Host, daemon: str) -> DaemonProbeResult:
        # An unreachable host and a stopped daemon look the same here.
        try:
            self.channel.run_steps(host, [ShellStep.of('systemctl', 'is-active', daemon, sudo=True)])
            active = True
        except (RackctlError, OSError) as e:
            logger.debug(f"{daemon} on {host} probed inactive: {e}")
            active = False
        return DaemonProbeResult(daemon=daemon, active=active)

    def troubleshoot(
        self,
        host: Host,
        role: NodeRole,
        daemons: Optional[Sequence[str]] = None,
    ) -> List[DaemonProbeResult]:
        """Probe every expected daemon on ``host`` and print the status table.

        Always returns one result per expected daemon.
        """
        daemons = required_daemons(role) if daemons is None else daemons
        typer.echo(f"[INFO] Troubleshooting on {role.value} {host}", file=self.out)
        results = [self.probe(host, daemon) for daemon in daemons]
        typer.echo(render_table(results), file=self.out)
        return results
