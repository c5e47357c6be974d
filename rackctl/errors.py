"""Exception hierarchy for rackctl.

Everything raised on purpose by the provisioning core derives from
``RackctlError`` so the CLI and API layers can turn it into an exit code or an
HTTP error without catching unrelated bugs.
"""
from typing import Optional, Sequence


class RackctlError(Exception):
    """Base class for all rackctl errors."""
    pass


class ConfigurationError(RackctlError):
    """Provisioning options could not be loaded or are invalid."""
    pass


class PrerequisiteError(RackctlError):
    """A required local tool is missing."""
    pass


class NoIdentityError(RackctlError):
    """No usable SSH identity is available in the agent."""

    def __init__(self, message: str = None):
        super().__init__(
            message or "Could not find or add an SSH identity. "
                       "Please start ssh-agent, add your identity, and retry."
        )


class MalformedAddressError(RackctlError):
    """A host address is not of the form ``user@ip``."""

    def __init__(self, address: str, reason: str = "expected user@ip"):
        self.address = address
        super().__init__(f"Malformed host address {address!r}: {reason}")


class RemoteExecutionError(RackctlError):
    """A remote command exited non-zero (or never finished)."""

    def __init__(self, host: str, command: str, exit_status: Optional[int], detail: str = ""):
        self.host = host
        self.command = command
        self.exit_status = exit_status
        status = f"exit status {exit_status}" if exit_status is not None else "no exit status"
        message = f"Remote command failed on {host} ({status}): {command}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class TransferError(RackctlError):
    """Copying files to a host failed."""

    def __init__(self, host: str, sources: Sequence[str], detail: str = ""):
        self.host = host
        self.sources = list(sources)
        message = f"Failed to copy {', '.join(self.sources)} to {host}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
