import io
import subprocess

from conftest import FakeChannel
from rackctl.modules.models import ClusterHealth, ClusterTopology, Host
from rackctl.modules.topology import resolve_topology
from rackctl.modules.troubleshoot import Troubleshooter
from rackctl.modules.validate import ClusterValidator


def runner_returning(code, seen=None):
    def run(argv, **kwargs):
        if seen is not None:
            seen.append((argv, kwargs))
        return subprocess.CompletedProcess(argv, code)
    return run


def make_validator(options, channel, runner, out):
    return ClusterValidator(
        options, resolve_topology(options), Troubleshooter(channel, out=out), runner=runner,
    )


def test_success_prints_nothing(options, channel):
    out = io.StringIO()
    validator = make_validator(options, channel, runner_returning(0), out)
    assert validator.validate() == ClusterHealth.HEALTHY
    assert validator.state == ClusterHealth.HEALTHY
    assert out.getvalue() == ""
    assert channel.calls == []


def test_failure_troubleshoots_master_then_each_node(options, channel):
    out = io.StringIO()
    validator = make_validator(options, channel, runner_returning(1), out)

    assert validator.validate() == ClusterHealth.UNHEALTHY

    headers = [line for line in out.getvalue().splitlines() if line.startswith("[INFO]")]
    assert headers == [
        "[INFO] Troubleshooting on master root@10.0.0.1",
        "[INFO] Troubleshooting on node root@10.0.0.2",
        "[INFO] Troubleshooting on node root@10.0.0.3",
    ]
    assert channel.hosts() == ["root@10.0.0.1", "root@10.0.0.2", "root@10.0.0.3"]
    assert len(channel.scripts("root@10.0.0.1")) == 3
    assert len(channel.scripts("root@10.0.0.3")) == 4


def test_missing_command_counts_as_unhealthy(options, channel):
    def run(argv, **kwargs):
        raise FileNotFoundError(argv[0])

    validator = make_validator(options, channel, run, io.StringIO())
    assert validator.validate() == ClusterHealth.UNHEALTHY


def test_routine_receives_cluster_environment(options, channel):
    seen = []
    validator = make_validator(options, channel, runner_returning(0, seen), io.StringIO())
    validator.check()

    argv, kwargs = seen[0]
    assert argv == ["validate-cluster"]
    assert kwargs["env"]["NUM_NODES"] == "2"
    assert kwargs["env"]["KUBE_CONTEXT"] == "rackhd"
    assert kwargs["env"]["KUBECONFIG"] == str(options.kubeconfig)


def test_master_only_cluster(options):
    channel = FakeChannel()
    out = io.StringIO()
    master = Host(address="root@10.0.0.1", user="root", ip="10.0.0.1")
    validator = ClusterValidator(
        options, ClusterTopology(master=master), Troubleshooter(channel, out=out), runner=runner_returning(2),
    )
    assert validator.validate() == ClusterHealth.UNHEALTHY
    assert channel.hosts() == ["root@10.0.0.1"]


def test_failure_keeps_probe_results_per_host(options):
    channel = FakeChannel(fail_when=lambda host, script: host == "root@10.0.0.3" and "flannel" in script)
    validator = make_validator(options, channel, runner_returning(1), io.StringIO())

    validator.validate()

    assert list(validator.diagnostics) == ["root@10.0.0.1", "root@10.0.0.2", "root@10.0.0.3"]
    assert [r.daemon for r in validator.diagnostics["root@10.0.0.1"]] == [
        "kube-apiserver", "kube-controller-manager", "kube-scheduler",
    ]
    statuses = {r.daemon: r.status for r in validator.diagnostics["root@10.0.0.3"]}
    assert statuses == {"kube-proxy": "active", "kubelet": "active", "docker": "active", "flannel": "inactive"}


def test_success_has_no_diagnostics(options, channel):
    validator = make_validator(options, channel, runner_returning(0), io.StringIO())
    validator.validate()
    assert validator.diagnostics == {}
