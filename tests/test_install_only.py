"""
Tests for the in-container install pipeline (--install-only) run locally.
"""

import logging
import os

import pytest

from hacore_installer.errors import CommandError, MissingCommandError, PreconditionError
from hacore_installer.lib.systemd import UNIT_PATH
from hacore_installer.main import run


@pytest.fixture
def install_env(fake_cmds, all_commands_present, os_release, written_files, ha_paths, monkeypatch, tmp_path):
    monkeypatch.setattr("hacore_installer.main.is_proxmox_host", lambda: False)
    fake_cmds.on("python3", "-c", stdout="3.13\n")
    fake_cmds.on("id", "-u", returncode=1)
    return {
        "environ": dict(ha_paths),
        "state_path": str(tmp_path / "state" / "state.json"),
        "log_path": str(tmp_path / "installer.log"),
    }


def _run(install_env, **kwargs):
    return run(
        mode="install",
        state_path=install_env["state_path"],
        log_path=install_env["log_path"],
        environ=install_env["environ"],
        **kwargs,
    )


def _make_venv_python(venv):
    bin_dir = os.path.join(venv, "bin")
    os.makedirs(bin_dir)
    path = os.path.join(bin_dir, "python")
    with open(path, "w") as f:
        f.write("#!/bin/sh\n")
    os.chmod(path, 0o755)


class TestFreshInstall:
    def test_runs_every_step(self, install_env, fake_cmds, written_files, ha_paths):
        state = _run(install_env)

        exe = state["execution"]
        assert exe["finished"] is True
        assert exe["completed_steps"] == [
            "10_preflight",
            "20_install_packages",
            "30_service_account",
            "40_create_venv",
            "50_install_homeassistant",
            "60_systemd_service",
        ]
        assert exe["decisions"]["service_user_created"] is True
        assert exe["decisions"]["venv_created"] is True

        assert fake_cmds.ran("apt-get", "update", "-y")
        assert fake_cmds.ran("apt-get", "install", "-y", "--no-install-recommends")
        assert fake_cmds.ran("useradd", "--system", "--create-home", "--home-dir", ha_paths["HA_CONFIG"])
        assert fake_cmds.ran("python3", "-m", "venv", ha_paths["HA_VENV"])
        assert fake_cmds.ran("sudo", "-u", "homeassistant", "-H", f"{ha_paths['HA_VENV']}/bin/pip", "install")
        assert fake_cmds.ran("ln", "-sfn", ha_paths["HA_CONFIG"], "/root/.homeassistant")
        assert fake_cmds.ran("systemctl", "daemon-reload")
        assert fake_cmds.ran("systemctl", "enable", "--now", "homeassistant")

        unit = written_files[UNIT_PATH]
        assert f"ExecStart={ha_paths['HA_VENV']}/bin/python -m homeassistant --config {ha_paths['HA_CONFIG']}" in unit

    def test_homeassistant_installed_after_tooling(self, install_env, fake_cmds):
        _run(install_env)

        tooling = fake_cmds.index("-m", "pip", "install", "--upgrade", "pip", "setuptools", "wheel")
        ha = fake_cmds.index("homeassistant", "mysqlclient", "psycopg2-binary", "isal", "webrtcvad")
        assert 0 <= tooling < ha

    def test_state_is_persisted(self, install_env):
        _run(install_env)
        assert os.path.exists(install_env["state_path"])

    def test_uv_tool(self, install_env, fake_cmds, ha_paths):
        install_env["environ"]["PKG_TOOL"] = "uv"

        _run(install_env)

        assert fake_cmds.ran("uv", "python", "install", "3.13")
        assert fake_cmds.ran("uv", "venv", ha_paths["HA_VENV"], "--python", "3.13")
        assert fake_cmds.ran("uv", "pip", "install", "--python", f"{ha_paths['HA_VENV']}/bin/python")
        assert not fake_cmds.ran("python3", "-m", "venv")


class TestIdempotency:
    def test_existing_user_and_venv_are_kept(self, install_env, fake_cmds, ha_paths):
        fake_cmds.on("id", "-u", returncode=0, stdout="999\n")
        _make_venv_python(ha_paths["HA_VENV"])

        state = _run(install_env)

        assert not fake_cmds.ran("useradd")
        assert not fake_cmds.ran("-m", "venv")
        assert state["execution"]["decisions"]["service_user_created"] is False
        assert state["execution"]["decisions"]["venv_created"] is False

    def test_rerun_walks_every_step_again(self, install_env, fake_cmds, ha_paths):
        _run(install_env)
        fake_cmds.on("id", "-u", returncode=0)
        _make_venv_python(ha_paths["HA_VENV"])
        first_calls = len(fake_cmds.calls)

        state = _run(install_env)

        assert len(state["execution"]["summary"]["ran_steps"]) == 6
        later = fake_cmds.calls[first_calls:]
        assert not any("useradd" in c for c in later)
        assert not any(c[1:3] == ["-m", "venv"] for c in later)

    def test_resume_after_failure(self, install_env, fake_cmds):
        fake_cmds.on("useradd", returncode=1, stderr="useradd: boom")

        with pytest.raises(CommandError):
            _run(install_env)

        fake_cmds.on("useradd", returncode=0)
        state = _run(install_env)

        assert state["execution"]["summary"]["skipped_steps"] == ["10_preflight", "20_install_packages"]
        assert len(fake_cmds.find("apt-get", "install")) == 1


class TestPlatformChecks:
    def test_wrong_python_fails_before_packages(self, install_env, fake_cmds):
        fake_cmds.on("python3", "-c", stdout="3.11\n")

        with pytest.raises(PreconditionError, match="python3 is 3.11, expected 3.13"):
            _run(install_env)

        assert not fake_cmds.ran("apt-get")

    def test_wrong_os_fails_before_packages(self, install_env, fake_cmds, os_release):
        os_release("ubuntu", "24.04")

        with pytest.raises(PreconditionError, match="Debian 13"):
            _run(install_env)

        assert not fake_cmds.ran("apt-get")

    def test_failure_recorded_in_state(self, install_env, fake_cmds):
        from hacore_installer.state_store import load_state

        fake_cmds.on("python3", "-c", stdout="3.12\n")
        with pytest.raises(PreconditionError):
            _run(install_env)

        exe = load_state(install_env["state_path"])["execution"]
        assert exe["errors"][-1]["step"] == "10_preflight"
        assert exe["finished"] is False

    def test_missing_python_fails_before_packages(self, install_env, fake_cmds, monkeypatch):
        monkeypatch.setattr(
            "hacore_installer.lib.command.shutil.which",
            lambda name: None if name == "python3" else f"/usr/bin/{name}",
        )

        with pytest.raises(MissingCommandError, match="Missing command: python3"):
            _run(install_env)

        assert fake_cmds.calls == []


def test_dry_run_executes_nothing(install_env, fake_cmds, written_files):
    state = _run(install_env, dry_run=True)

    assert fake_cmds.calls == []
    assert written_files == {}
    assert state["execution"]["finished"] is True
    assert not os.path.exists(install_env["state_path"])


def test_dry_run_plans_resource_creation(install_env, fake_cmds, ha_paths):
    fake_cmds.on("id", "-u", returncode=0)
    _make_venv_python(ha_paths["HA_VENV"])

    _run(install_env, dry_run=True)
    for h in logging.getLogger().handlers:
        h.flush()

    log = open(install_env["log_path"], encoding="utf-8").read()
    assert f"CMD useradd --system --create-home --home-dir {ha_paths['HA_CONFIG']}" in log
    assert f"CMD python3 -m venv {ha_paths['HA_VENV']}" in log
    assert "already exists" not in log
    assert fake_cmds.calls == []
