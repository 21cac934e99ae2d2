"""
Tests for the Proxmox host pipeline (--proxmox / --create-ct).
"""

import os

import pytest

from hacore_installer.errors import MissingCommandError, PreconditionError
from hacore_installer.lib.systemd import UNIT_PATH
from hacore_installer.main import build_host_steps, run

from test_proxmox import PVEAM_AVAILABLE, PVEAM_LIST, PVESM_STATUS

TEMPLATE = "debian-13-standard_13.1-2_amd64.tar.zst"
OS_RELEASE = 'PRETTY_NAME="Debian GNU/Linux 13 (trixie)"\nID=debian\nVERSION_ID="13"\n'


@pytest.fixture
def host(fake_cmds, all_commands_present, monkeypatch, tmp_path):
    monkeypatch.setattr("hacore_installer.main.is_proxmox_host", lambda: True)
    monkeypatch.setattr("hacore_installer.lib.proxmox.time.sleep", lambda s: None)

    fake_cmds.on("pvesm", "status", stdout=PVESM_STATUS)
    fake_cmds.on("pveam", "available", stdout=PVEAM_AVAILABLE)
    fake_cmds.on("pveam", "list", stdout="NAME SIZE\n")
    fake_cmds.on("pct", "status", returncode=2, stderr="Configuration file 'nodes/pve/lxc/120.conf' does not exist")
    fake_cmds.on("hostname", "-I", stdout="192.168.1.77 \n")
    fake_cmds.on("cat", "/etc/os-release", stdout=OS_RELEASE)
    fake_cmds.on("python3", "-c", stdout="3.13\n")
    fake_cmds.on("id", "-u", returncode=1)
    fake_cmds.on("test", "-x", returncode=1)

    return {
        "environ": {"CTID": "120", "CT_PASSWORD": "s3cret-pass"},
        "state_path": str(tmp_path / "host-state.json"),
        "log_path": str(tmp_path / "installer.log"),
    }


def _run(host, **kwargs):
    return run(
        mode="host",
        state_path=host["state_path"],
        log_path=host["log_path"],
        environ=host["environ"],
        **kwargs,
    )


class TestCreateAndInstall:
    def test_full_run(self, host, fake_cmds):
        state = _run(host)

        decisions = state["execution"]["decisions"]
        assert decisions["ctid"] == "120"
        assert decisions["template_storage"] == "local"
        assert decisions["root_storage"] == "local"
        assert decisions["template"] == TEMPLATE
        assert decisions["ip"] == "192.168.1.77"
        assert state["execution"]["finished"] is True

        assert fake_cmds.ran("pveam", "download", "local", TEMPLATE)
        create = fake_cmds.find("pct", "create")[0]
        assert create[2:4] == ["120", f"local:vztmpl/{TEMPLATE}"]
        assert fake_cmds.ran("pct", "start", "120")

    def test_order_of_operations(self, host, fake_cmds):
        _run(host)

        order = [
            fake_cmds.index("pvesm", "status"),
            fake_cmds.index("pveam", "download"),
            fake_cmds.index("pct", "create"),
            fake_cmds.index("pct", "start"),
            fake_cmds.index("pct", "exec", "120", "--", "python3", "-c"),
            fake_cmds.index("pct", "exec", "120", "--", "useradd"),
        ]
        assert order == sorted(order)
        assert -1 not in order

    def test_install_runs_inside_container(self, host, fake_cmds):
        _run(host)

        for fragment in (
            ("useradd", "--system"),
            ("python3", "-m", "venv", "/srv/homeassistant/.venv"),
            ("systemctl", "enable", "--now", "homeassistant"),
        ):
            calls = fake_cmds.find(*fragment)
            assert calls, fragment
            assert all(c[:4] == ["pct", "exec", "120", "--"] for c in calls)

        unit = fake_cmds.pushed[UNIT_PATH]
        assert "ExecStart=/srv/homeassistant/.venv/bin/python -m homeassistant --config /var/lib/homeassistant" in unit

    def test_password_file_is_removed(self, host, fake_cmds):
        _run(host)

        assert len(fake_cmds.password_files) == 1
        path, contents = fake_cmds.password_files[0]
        assert contents == "s3cret-pass\n"
        assert not os.path.exists(path)

    def test_template_already_downloaded(self, host, fake_cmds):
        fake_cmds.on("pveam", "list", stdout=PVEAM_LIST)

        _run(host)

        assert not fake_cmds.ran("pveam", "download")

    def test_ctid_from_pvesh(self, host, fake_cmds):
        del host["environ"]["CTID"]
        fake_cmds.on("pvesh", "get", "/cluster/nextid", stdout="131\n")

        state = _run(host)

        assert state["execution"]["decisions"]["ctid"] == "131"
        assert fake_cmds.ran("pct", "start", "131")

    def test_custom_payload_replaces_builtin_steps(self, host, fake_cmds, tmp_path):
        payload = tmp_path / "install.sh"
        payload.write_text("#!/usr/bin/env bash\necho custom\n", encoding="utf-8")
        host["environ"]["INSTALL_PAYLOAD"] = str(payload)

        _run(host)

        assert fake_cmds.pushed["/root/hacore-install.sh"] == "#!/usr/bin/env bash\necho custom\n"
        assert fake_cmds.ran("pct", "exec", "120", "--", "bash", "/root/hacore-install.sh")
        assert not fake_cmds.ran("useradd")


class TestHostFailures:
    def test_missing_pct(self, host, monkeypatch, fake_cmds):
        monkeypatch.setattr(
            "hacore_installer.lib.command.shutil.which",
            lambda name: None if name == "pveam" else f"/usr/bin/{name}",
        )

        with pytest.raises(MissingCommandError, match="Missing command: pveam"):
            _run(host)
        assert fake_cmds.calls == []

    def test_no_template_storage(self, host, fake_cmds):
        fake_cmds.on("pvesm", "status", stdout="Name Type Status\n")

        with pytest.raises(PreconditionError, match="vztmpl"):
            _run(host)
        assert not fake_cmds.ran("pct", "create")

    def test_no_template(self, host, fake_cmds):
        fake_cmds.on("pveam", "available", stdout="")

        with pytest.raises(PreconditionError, match="Debian 13 template"):
            _run(host)

    def test_no_ctid(self, host, fake_cmds, monkeypatch):
        del host["environ"]["CTID"]
        fake_cmds.on("pvesh", "get", returncode=1)

        with pytest.raises(PreconditionError, match="CTID not set"):
            _run(host)

    def test_existing_container(self, host, fake_cmds):
        fake_cmds.on("pct", "status", stdout="status: running\n")

        with pytest.raises(PreconditionError, match="already exists"):
            _run(host)
        assert not fake_cmds.ran("pct", "create")

    def test_wrong_os_in_container(self, host, fake_cmds):
        fake_cmds.on("cat", "/etc/os-release", stdout="ID=debian\nVERSION_ID=\"12\"\n")

        with pytest.raises(PreconditionError):
            _run(host)
        assert not fake_cmds.ran("apt-get")

    def test_missing_payload_file(self, host, tmp_path):
        host["environ"]["INSTALL_PAYLOAD"] = str(tmp_path / "nope.sh")

        with pytest.raises(PreconditionError, match="INSTALL_PAYLOAD"):
            _run(host)


def test_host_step_order():
    ids = [s.step_id for s in build_host_steps()]
    assert ids[0] == "host_10_preflight"
    assert ids[-1] == "host_90_report"
    assert "60_systemd_service" in ids

    payload_ids = [s.step_id for s in build_host_steps(install_payload="/tmp/x.sh")]
    assert "host_60_run_payload" in payload_ids
    assert "60_systemd_service" not in payload_ids
