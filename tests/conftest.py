"""
Pytest fixtures for the installer test suite.

No test runs a real external command: subprocess.run is replaced by
FakeCommands, which answers from a list of rules and records every argv.
"""

import logging
import subprocess
from pathlib import Path

import pytest

from hacore_installer.config import ENV_VARS


class FakeCommands:
    """Stand-in for subprocess.run.

    A rule matches when its argv fragment appears contiguously in the command,
    so the same rule answers both local and `pct exec CTID -- ...` forms.
    Later rules win.
    """

    def __init__(self):
        self.calls = []
        self.rules = []
        self.pushed = {}
        self.password_files = []

    def on(self, *fragment, returncode=0, stdout="", stderr=""):
        self.rules.insert(0, (list(fragment), returncode, stdout, stderr))
        return self

    def __call__(self, argv, input=None, text=None, stdout=None, stderr=None, cwd=None, env=None):
        argv = list(argv)
        self.calls.append(argv)

        if argv[:2] == ["pct", "push"]:
            self.pushed[argv[4]] = Path(argv[3]).read_text(encoding="utf-8")
        if "--password-file" in argv:
            pwfile = argv[argv.index("--password-file") + 1]
            self.password_files.append((pwfile, Path(pwfile).read_text(encoding="utf-8")))

        for fragment, rc, out, err in self.rules:
            if _contains(argv, fragment):
                return subprocess.CompletedProcess(argv, rc, out, err)
        return subprocess.CompletedProcess(argv, 0, "", "")

    def ran(self, *fragment):
        return any(_contains(c, list(fragment)) for c in self.calls)

    def find(self, *fragment):
        return [c for c in self.calls if _contains(c, list(fragment))]

    def index(self, *fragment):
        for i, c in enumerate(self.calls):
            if _contains(c, list(fragment)):
                return i
        return -1


def _contains(argv, fragment):
    n = len(fragment)
    return any(argv[i : i + n] == fragment for i in range(len(argv) - n + 1))


@pytest.fixture
def fake_cmds(monkeypatch):
    fake = FakeCommands()
    monkeypatch.setattr("hacore_installer.lib.command.subprocess.run", fake)
    return fake


@pytest.fixture
def all_commands_present(monkeypatch):
    monkeypatch.setattr("hacore_installer.lib.command.shutil.which", lambda name: f"/usr/bin/{name}")


@pytest.fixture
def written_files(monkeypatch):
    """Capture LocalTarget.write_file instead of touching /etc."""

    files = {}

    def _write(self, path, contents, *, mode=0o644):
        if not self.dry_run:
            files[path] = contents

    monkeypatch.setattr("hacore_installer.lib.target.LocalTarget.write_file", _write)
    return files


@pytest.fixture
def os_release(tmp_path, monkeypatch):
    """Point the OS check at a temp os-release file; returns a writer."""

    path = tmp_path / "os-release"

    def _write(os_id="debian", version_id="13"):
        path.write_text(
            f'PRETTY_NAME="Test Linux"\nID={os_id}\nVERSION_ID="{version_id}"\n',
            encoding="utf-8",
        )
        return path

    monkeypatch.setattr("hacore_installer.lib.osinfo.OS_RELEASE_PATH", str(path))
    _write()
    return _write


@pytest.fixture
def ha_paths(tmp_path):
    base = tmp_path / "srv" / "homeassistant"
    return {
        "HA_BASE": str(base),
        "HA_VENV": str(base / ".venv"),
        "HA_CONFIG": str(tmp_path / "var" / "lib" / "homeassistant"),
    }


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    root = logging.getLogger()
    for h in list(root.handlers):
        # Only the handlers configure_logging() adds; pytest's own are subclasses.
        if type(h) in (logging.FileHandler, logging.StreamHandler):
            root.removeHandler(h)
            h.close()
    for attr in ("_hacore_configured", "_hacore_log_path"):
        if hasattr(root, attr):
            delattr(root, attr)
