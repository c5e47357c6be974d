import subprocess
from typing import Callable, List, Optional, Tuple

import pytest

from rackctl.config import ProvisioningOptions
from rackctl.errors import RemoteExecutionError, TransferError
from rackctl.modules.models import IdentityOutcome
from rackctl.modules.ssh import FileTransfer, RemoteCommand


class FakeChannel:
    """Records remote calls; ``fail_when(host, script)`` decides which ones fail."""

    def __init__(self, fail_when: Optional[Callable[[str, str], bool]] = None):
        self.calls: List[Tuple[str, str, str]] = []
        self.fail_when = fail_when or (lambda host, script: False)

    def run(self, command: RemoteCommand) -> int:
        script = command.render()
        self.calls.append(("run", command.host.address, script))
        if self.fail_when(command.host.address, script):
            raise RemoteExecutionError(command.host.address, script, 1)
        return 0

    def run_steps(self, host, steps, tty=True, quiet=True) -> int:
        return self.run(RemoteCommand(host=host, steps=tuple(steps), tty=tty, quiet=quiet))

    def copy(self, transfer: FileTransfer) -> None:
        joined = " ".join(transfer.sources)
        self.calls.append(("copy", transfer.host.address, joined))
        if self.fail_when(transfer.host.address, joined):
            raise TransferError(transfer.host.address, transfer.sources)

    def copy_paths(self, host, sources, destination, recursive=True) -> None:
        self.copy(FileTransfer(host=host, sources=tuple(str(s) for s in sources),
                               destination=destination, recursive=recursive))

    def hosts(self) -> List[str]:
        """Hosts touched, in first-contact order."""
        seen = []
        for _, host, _ in self.calls:
            if host not in seen:
                seen.append(host)
        return seen

    def scripts(self, host: str) -> List[str]:
        return [script for kind, h, script in self.calls if kind == "run" and h == host]


class FakeAgent:
    """Stands in for SSHAgent; records whether it was entered and exited."""

    def __init__(self, outcome: IdentityOutcome = IdentityOutcome.ALREADY_AVAILABLE, error: Exception = None):
        self.outcome = outcome
        self.error = error
        self.entered = False
        self.exited = False

    def __enter__(self):
        self.entered = True
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.exited = True
        return False

    def ensure_identity(self) -> IdentityOutcome:
        if self.error is not None:
            raise self.error
        return self.outcome


class FakeRunner:
    """``subprocess.run`` stand-in returning scripted exit codes per argv prefix."""

    def __init__(self, responses=None, default: int = 0):
        self.responses = responses or {}
        self.default = default
        self.calls: List[list] = []
        self.kwargs: List[dict] = []

    def __call__(self, argv, **kwargs):
        self.calls.append(list(argv))
        self.kwargs.append(kwargs)
        key = tuple(argv[:2])
        response = self.responses.get(key, self.default)
        if callable(response):
            response = response()
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, tuple):
            code, stdout = response
        else:
            code, stdout = response, ""
        return subprocess.CompletedProcess(argv, code, stdout=stdout, stderr="")


@pytest.fixture
def options(tmp_path) -> ProvisioningOptions:
    return ProvisioningOptions(
        master="root@10.0.0.1",
        nodes=["root@10.0.0.2", "root@10.0.0.3"],
        artifact_dir=tmp_path / "artifacts",
        kubeconfig=tmp_path / "kube" / "config",
        validate_command=["validate-cluster"],
    )


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()
