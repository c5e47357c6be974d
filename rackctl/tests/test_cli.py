import subprocess
import sys
from pathlib import Path

import pytest
from typer.testing import CliRunner

from conftest import FakeAgent, FakeChannel
from rackctl.cli import app
from rackctl.commands import cluster
from rackctl.modules.orchestrator import ClusterOrchestrator

runner = CliRunner()


@pytest.fixture
def orchestrate(monkeypatch, options):
    """Route every CLI command to an orchestrator wired to fakes."""
    state = {"channel": FakeChannel(), "validation_code": 0, "overrides": None}

    def build(config=None, **overrides):
        state["overrides"] = overrides
        opts = options.model_copy(update={k: v for k, v in overrides.items() if v is not None})
        return ClusterOrchestrator(
            opts,
            channel=state["channel"],
            agent_factory=FakeAgent,
            prereq_check=lambda: None,
            validation_runner=lambda argv, **kw: subprocess.CompletedProcess(argv, state["validation_code"]),
        )

    monkeypatch.setattr(cluster, "build_orchestrator", build)
    monkeypatch.delenv("KUBE_USER", raising=False)
    monkeypatch.delenv("KUBE_PASSWORD", raising=False)
    return state


def test_up(orchestrate, options):
    result = runner.invoke(app, ["cluster", "up", "--parallel", "2"])
    assert result.exit_code == 0, result.output
    assert "Cluster is up at http://10.0.0.1:8080" in result.output
    assert orchestrate["overrides"] == {"node_parallelism": 2}
    assert Path(options.kubeconfig).exists()


def test_up_failure_exits_one(orchestrate):
    orchestrate["channel"] = FakeChannel(fail_when=lambda host, script: "etcd.sh" in script)
    result = runner.invoke(app, ["cluster", "up"])
    assert result.exit_code == 1


def test_validate(orchestrate):
    result = runner.invoke(app, ["cluster", "validate"])
    assert result.exit_code == 0
    assert "Cluster validation passed" in result.output

    orchestrate["validation_code"] = 1
    result = runner.invoke(app, ["cluster", "validate"])
    assert result.exit_code == 1
    assert "[INFO] Troubleshooting on master root@10.0.0.1" in result.output
    assert "[INFO] Troubleshooting on node root@10.0.0.3" in result.output


def test_troubleshoot(orchestrate):
    result = runner.invoke(app, ["cluster", "troubleshoot", "--host", "root@10.0.0.2"])
    assert result.exit_code == 0
    assert "kube-proxy" in result.output

    orchestrate["channel"] = FakeChannel(fail_when=lambda host, script: "kube-scheduler" in script)
    result = runner.invoke(app, ["cluster", "troubleshoot", "--host", "root@10.0.0.1", "--role", "master"])
    assert result.exit_code == 1
    assert "inactive" in result.output


def test_troubleshoot_malformed_host(orchestrate):
    result = runner.invoke(app, ["cluster", "troubleshoot", "--host", "10.0.0.2"])
    assert result.exit_code == 1


def test_topology(orchestrate):
    result = runner.invoke(app, ["cluster", "topology"])
    assert result.exit_code == 0
    lines = [line for line in result.stdout.splitlines() if line.startswith(("master ", "node "))]
    assert lines[0].split() == ["master", "10.0.0.1", "root@10.0.0.1"]
    assert [line.split()[1] for line in lines[1:]] == ["10.0.0.2", "10.0.0.3"]


@pytest.mark.parametrize("command", ["down", "push"])
def test_unsupported_commands_exit_three(orchestrate, command):
    result = runner.invoke(app, ["cluster", command])
    assert result.exit_code == 3


def test_missing_master(monkeypatch, tmp_path):
    monkeypatch.delenv("MASTER", raising=False)
    monkeypatch.delenv("RACKCTL_CONFIG", raising=False)
    result = runner.invoke(app, ["cluster", "topology"])
    assert result.exit_code == 1


def run_cli_command(cmd):
    return subprocess.run([sys.executable, "-m", "rackctl.cli"] + cmd.split(), capture_output=True, text=True)


def test_help():
    result = run_cli_command("--help")
    assert "Usage" in result.stdout


def test_cluster_commands_exist():
    result = run_cli_command("cluster --help")
    for command in ("up", "validate", "troubleshoot", "topology", "down", "push"):
        assert command in result.stdout
