import io

from conftest import FakeChannel
from rackctl.modules.models import DaemonProbeResult, Host, NodeRole
from rackctl.modules.troubleshoot import (
    MASTER_REQUIRED_DAEMONS, NODE_REQUIRED_DAEMONS, Troubleshooter, render_table, required_daemons,
)

NODE = Host(address="root@10.0.0.2", user="root", ip="10.0.0.2")


def test_required_daemons_per_role():
    assert required_daemons(NodeRole.MASTER) == MASTER_REQUIRED_DAEMONS
    assert required_daemons(NodeRole.NODE) == ("kube-proxy", "kubelet", "docker", "flannel")


def test_render_table():
    table = render_table([
        DaemonProbeResult("kube-proxy", True),
        DaemonProbeResult("kubelet", False),
    ])
    lines = table.split("\n")
    assert lines[0] == "PROCESS                  STATUS     "
    assert lines[1] == "kube-proxy               active"
    assert lines[2] == "kubelet                  inactive"
    assert table.endswith("\n")


def test_one_row_per_daemon_even_when_probes_fail():
    channel = FakeChannel(fail_when=lambda host, script: "kubelet" in script or "flannel" in script)
    out = io.StringIO()

    results = Troubleshooter(channel, out=out).troubleshoot(NODE, NodeRole.NODE)

    assert [r.daemon for r in results] == list(NODE_REQUIRED_DAEMONS)
    assert [r.active for r in results] == [True, False, True, False]
    assert channel.scripts(NODE.address) == [
        f"sudo systemctl is-active {d}" for d in NODE_REQUIRED_DAEMONS
    ]

    text = out.getvalue()
    assert text.startswith("[INFO] Troubleshooting on node root@10.0.0.2\n")
    assert "kubelet                  inactive" in text
    assert "docker                   active" in text


def test_unreachable_host_reports_everything_inactive():
    channel = FakeChannel(fail_when=lambda host, script: True)
    results = Troubleshooter(channel, out=io.StringIO()).troubleshoot(NODE, NodeRole.MASTER)
    assert len(results) == 3
    assert not any(r.active for r in results)


def test_explicit_daemon_list():
    out = io.StringIO()
    results = Troubleshooter(FakeChannel(), out=out).troubleshoot(NODE, NodeRole.NODE, daemons=["etcd"])
    assert results == [DaemonProbeResult("etcd", True)]
