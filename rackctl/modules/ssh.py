"""
Remote command execution and file transfer using native OpenSSH.

Every remote operation in rackctl goes through ``SSHChannel``. Commands are
built as typed ``ShellStep`` values and quoted at render time instead of being
assembled by string concatenation.

Host-key verification is disabled on purpose: cluster hosts are re-imaged
machines whose keys are never known in advance, so the channel trusts the
network path to the configured addresses. Do not point rackctl at hosts
reachable over an untrusted network.
"""
import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence, Tuple, Union

from ..errors import RemoteExecutionError, TransferError
from .models import Host

logger = logging.getLogger("rackctl.ssh")

SSH_OPTS: Tuple[str, ...] = (
    '-oStrictHostKeyChecking=no',
    '-oUserKnownHostsFile=/dev/null',
    '-oLogLevel=ERROR',
)


class RemotePath(str):
    """A path on the remote host; a leading ``~/`` is left for the remote shell to expand."""

    def quoted(self) -> str:
        if self == '~' or self.startswith('~/'):
            rest = self[2:]
            return '~/' + shlex.quote(rest) if rest else '~'
        return shlex.quote(self)


def _quote(arg: str) -> str:
    if isinstance(arg, RemotePath):
        return arg.quoted()
    return shlex.quote(arg)


@dataclass(frozen=True)
class ShellStep:
    """One statement of a remote script."""
    argv: Tuple[str, ...] = ()
    sudo: bool = False
    pipeline: Optional[str] = None

    @classmethod
    def of(cls, *argv: str, sudo: bool = False) -> 'ShellStep':
        return cls(argv=tuple(argv), sudo=sudo)

    @classmethod
    def raw(cls, pipeline: str) -> 'ShellStep':
        """A pre-rendered statement, used verbatim (e.g. ``curl ... | sh``)."""
        return cls(pipeline=pipeline)

    def render(self) -> str:
        if self.pipeline is not None:
            return self.pipeline
        words = [_quote(a) for a in self.argv]
        if self.sudo:
            words.insert(0, 'sudo')
        return ' '.join(words)


@dataclass(frozen=True)
class RemoteCommand:
    """A script for one host. Steps run in order and stop at the first failure."""
    host: Host
    steps: Tuple[ShellStep, ...]
    tty: bool = True
    quiet: bool = True

    def render(self) -> str:
        return ' && '.join(step.render() for step in self.steps)


@dataclass(frozen=True)
class FileTransfer:
    """Local sources copied into a directory on a host."""
    host: Host
    sources: Tuple[str, ...]
    destination: str
    recursive: bool = True


class SSHChannel:
    """Runs commands and copies files over ``ssh``/``scp``."""

    def __init__(self, timeout: Optional[int] = None, runner: Callable = subprocess.run):
        """Initialize the channel.

        Args:
            timeout: Per-call timeout in seconds. ``None`` blocks until the
                remote command finishes.
            runner: ``subprocess.run`` compatible callable
        """
        self.timeout = timeout
        self._runner = runner

    def ssh_argv(self, command: RemoteCommand) -> list:
        argv = ['ssh', *SSH_OPTS]
        if command.tty:
            argv.append('-t')
        argv.extend([command.host.address, command.render()])
        return argv

    def scp_argv(self, transfer: FileTransfer) -> list:
        argv = ['scp']
        if transfer.recursive:
            argv.append('-r')
        argv.extend(SSH_OPTS)
        argv.extend(str(s) for s in transfer.sources)
        argv.append(f'{transfer.host.address}:{transfer.destination}')
        return argv

    def run(self, command: RemoteCommand) -> int:
        """Execute ``command`` and wait for it.

        Returns:
            int: The exit status, always 0

        Raises:
            RemoteExecutionError: If the command exits non-zero, times out or
                ``ssh`` cannot be started
        """
        script = command.render()
        logger.debug(f"[{command.host.address}] $ {script}")
        try:
            result = self._runner(
                self.ssh_argv(command),
                stdout=subprocess.DEVNULL if command.quiet else None,
                stderr=subprocess.PIPE if command.quiet else None,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise RemoteExecutionError(
                command.host.address, script, None, f"timed out after {self.timeout} seconds"
            )
        except OSError as e:
            raise RemoteExecutionError(command.host.address, script, None, str(e)) from e

        if result.returncode != 0:
            detail = (result.stderr or '').strip() if command.quiet else ''
            raise RemoteExecutionError(command.host.address, script, result.returncode, detail)
        return result.returncode

    def run_steps(
        self,
        host: Host,
        steps: Iterable[ShellStep],
        tty: bool = True,
        quiet: bool = True,
    ) -> int:
        return self.run(RemoteCommand(host=host, steps=tuple(steps), tty=tty, quiet=quiet))

    def copy(self, transfer: FileTransfer) -> None:
        """Copy local paths to a directory on the host.

        Raises:
            TransferError: On any failure
        """
        sources = [str(s) for s in transfer.sources]
        logger.debug(f"[{transfer.host.address}] scp {' '.join(sources)} -> {transfer.destination}")
        try:
            result = self._runner(
                self.scp_argv(transfer),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise TransferError(transfer.host.address, sources, f"timed out after {self.timeout} seconds")
        except OSError as e:
            raise TransferError(transfer.host.address, sources, str(e)) from e

        if result.returncode != 0:
            raise TransferError(transfer.host.address, sources, (result.stderr or '').strip())

    def copy_paths(
        self,
        host: Host,
        sources: Sequence[Union[str, os.PathLike]],
        destination: str,
        recursive: bool = True,
    ) -> None:
        self.copy(FileTransfer(
            host=host,
            sources=tuple(str(s) for s in sources),
            destination=destination,
            recursive=recursive,
        ))
