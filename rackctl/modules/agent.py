"""
SSH agent handling.

Before any remote work the orchestrator needs at least one identity in an
ssh-agent. ``SSHAgent.check_identity`` walks a small ladder:

1. ``ssh-add -L`` exits 2: no agent is reachable, start one for this process.
2. ``ssh-add -L`` exits 1: the agent has no identities, try ``ssh-add`` once.
3. ``ssh-add -L`` must now exit 0.

An agent started here is killed when the ``SSHAgent`` context exits.
"""
import logging
import os
import re
import shutil
import subprocess
from typing import Callable, Dict, MutableMapping, Optional

from ..errors import NoIdentityError, PrerequisiteError, RackctlError
from .models import IdentityOutcome

logger = logging.getLogger("rackctl.agent")

REQUIRED_TOOLS = ('ssh', 'scp', 'ssh-add', 'ssh-agent')

# ssh-add -L exit codes
AGENT_OK = 0
AGENT_NO_IDENTITIES = 1
AGENT_UNREACHABLE = 2

_AGENT_VAR_RE = re.compile(r'(SSH_AUTH_SOCK|SSH_AGENT_PID)=([^;\s]+)')


def verify_prereqs(which: Callable[[str], Optional[str]] = shutil.which) -> None:
    """Check that the local OpenSSH tools are installed.

    Raises:
        PrerequisiteError: If any tool is missing from PATH
    """
    missing = [tool for tool in REQUIRED_TOOLS if which(tool) is None]
    if missing:
        raise PrerequisiteError(
            f"Can't find {', '.join(missing)} in PATH, please install OpenSSH client tools and retry."
        )


class SSHAgent:
    """Scoped access to an ssh-agent holding the operator's identity."""

    def __init__(
        self,
        runner: Callable = subprocess.run,
        environ: Optional[MutableMapping[str, str]] = None,
    ):
        self._runner = runner
        self._environ = os.environ if environ is None else environ
        self._saved_env: Dict[str, Optional[str]] = {}
        self.started_pid: Optional[str] = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False

    def _ssh_add(self, *args: str) -> int:
        result = self._runner(
            ['ssh-add', *args],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            env=dict(self._environ),
        )
        return result.returncode

    def list_identities(self) -> int:
        """Return the exit status of ``ssh-add -L``."""
        try:
            return self._ssh_add('-L')
        except OSError as e:
            logger.debug(f"ssh-add -L could not run: {e}")
            return AGENT_UNREACHABLE

    def start(self) -> None:
        """Start an agent and export its socket to this process."""
        try:
            result = self._runner(
                ['ssh-agent', '-s'],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                env=dict(self._environ),
            )
        except OSError as e:
            raise RackctlError(f"Failed to start ssh-agent: {e}") from e
        if result.returncode != 0:
            raise RackctlError(f"Failed to start ssh-agent: {(result.stderr or '').strip()}")

        values = dict(_AGENT_VAR_RE.findall(result.stdout or ''))
        if 'SSH_AUTH_SOCK' not in values or 'SSH_AGENT_PID' not in values:
            raise RackctlError("Failed to parse ssh-agent output")

        for var, value in values.items():
            self._saved_env.setdefault(var, self._environ.get(var))
            self._environ[var] = value
        self.started_pid = values['SSH_AGENT_PID']
        logger.info(f"🔑 Started ssh-agent (pid {self.started_pid})")

    def stop(self) -> None:
        """Kill the agent if this object started it, and restore the environment."""
        if self.started_pid is None:
            return
        pid = self.started_pid
        self.started_pid = None
        try:
            self._runner(
                ['ssh-agent', '-k'],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                env=dict(self._environ),
            )
            logger.debug(f"Stopped ssh-agent (pid {pid})")
        except OSError as e:
            logger.warning(f"Failed to stop ssh-agent (pid {pid}): {e}")
        finally:
            for var, value in self._saved_env.items():
                if value is None:
                    self._environ.pop(var, None)
                else:
                    self._environ[var] = value
            self._saved_env.clear()

    def add_default_identity(self) -> bool:
        """Try ``ssh-add`` with the default identities. Never raises."""
        try:
            return self._ssh_add() == 0
        except OSError as e:
            logger.debug(f"ssh-add could not run: {e}")
            return False

    def check_identity(self) -> IdentityOutcome:
        rc = self.list_identities()
        if rc == AGENT_UNREACHABLE:
            # "Could not open a connection to your authentication agent."
            self.start()
            rc = self.list_identities()
        if rc == AGENT_OK:
            return IdentityOutcome.ALREADY_AVAILABLE

        if rc == AGENT_NO_IDENTITIES:
            # "The agent has no identities."
            if not self.add_default_identity():
                logger.debug("ssh-add did not add a default identity")

        if self.list_identities() == AGENT_OK:
            return IdentityOutcome.RECOVERED_BY_ADD
        return IdentityOutcome.UNRECOVERABLE

    def ensure_identity(self) -> IdentityOutcome:
        """Run the ladder and fail hard if no identity is usable.

        Raises:
            NoIdentityError: If the agent still has no identities
        """
        outcome = self.check_identity()
        if outcome == IdentityOutcome.UNRECOVERABLE:
            raise NoIdentityError()
        logger.info(f"🔑 SSH identity available ({outcome.value})")
        return outcome
