"""Post-install maintenance run inside an existing container.

Three actions, mirroring the update menu of the community helper script:
- core: upgrade Home Assistant in the venv (optionally to a beta)
- hacs: install the Home Assistant Community Store
- filebrowser: install FileBrowser serving the config directory
"""

from __future__ import annotations

import contextlib
import logging
import os
import shlex
import tarfile
import tempfile
from datetime import datetime
from typing import Optional

import requests

from .config import InstallerConfig
from .errors import InstallerError, PreconditionError
from .lib.osinfo import verify_debian13
from .lib.pkg import HA_PYTHON_PACKAGES, apt_install, apt_update, create_venv, ensure_uv, pip_install, upgrade_tooling
from .lib.proxmox import generate_password, ha_url
from .lib.systemd import SERVICE_NAME, UNIT_PATH, install_unit, migrate_legacy_unit, systemctl

logger = logging.getLogger(__name__)

UPDATE_CHOICES = ("core", "hacs", "filebrowser")

HACS_INSTALLER_URL = "https://get.hacs.xyz"
FILEBROWSER_RELEASE_API = "https://api.github.com/repos/filebrowser/filebrowser/releases/latest"
FILEBROWSER_ASSET_URL = "https://github.com/filebrowser/filebrowser/releases/download/{tag}/linux-amd64-filebrowser.tar.gz"
FILEBROWSER_BIN_DIR = "/usr/local/bin"
FILEBROWSER_DB = "/root/filebrowser.db"
FILEBROWSER_PORT = 8080
HTTP_TIMEOUT = 30


def local_ip(target) -> Optional[str]:
    r = target.run(["hostname", "-I"], check=False)
    parts = r.stdout.split() if r.ok else []
    return parts[0] if parts else None


def require_installation(target, cfg: InstallerConfig) -> None:
    if not target.path_exists(cfg.ha_base):
        raise PreconditionError(f"No Home Assistant Core installation found at {cfg.ha_base}")


def _migrate_legacy_venv(target, cfg: InstallerConfig) -> None:
    """Rebuild an install that predates the .venv layout (<base>/bin/python3)."""

    stamp = datetime.now().strftime("%Y%m%d%H%M%S")
    backup = f"{cfg.ha_base.rstrip('/')}_backup_{stamp}"
    logger.info("==> Migrating to .venv-based structure (backup: %s)", backup)
    target.run(["mv", cfg.ha_base, backup])
    target.run(["mkdir", "-p", cfg.ha_base])
    create_venv(target, cfg)
    target.run(["chown", "-R", f"{cfg.ha_user}:{cfg.ha_group}", cfg.ha_base], check=False)
    upgrade_tooling(target, cfg)
    pip_install(target, cfg, HA_PYTHON_PACKAGES)


def _migrate_unit(target, cfg: InstallerConfig) -> bool:
    text = target.read_file(UNIT_PATH)
    if text is None:
        return False
    migrated = migrate_legacy_unit(text, cfg)
    if migrated == text:
        return False
    logger.info("Rewriting %s for the venv layout", UNIT_PATH)
    target.write_file(UNIT_PATH, migrated)
    systemctl(target, "daemon-reload")
    return True


def detect_pkg_tool(target, cfg: InstallerConfig) -> InstallerConfig:
    """Match the tool that built the existing venv; uv venvs carry no pip."""

    if cfg.pkg_tool == "pip" and target.is_executable(cfg.venv_python):
        if not target.is_executable(f"{cfg.venv_bin}/pip"):
            logger.info("%s has no pip; managing it with uv", cfg.ha_venv)
            return cfg.replace(pkg_tool="uv")
    return cfg


def update_core(target, cfg: InstallerConfig, *, beta: bool = False) -> None:
    verify_debian13(target)
    require_installation(target, cfg)
    cfg = detect_pkg_tool(target, cfg)
    if cfg.pkg_tool == "uv":
        ensure_uv(target)

    logger.info("==> Updating to %s version", "Beta" if beta else "Stable")
    systemctl(target, "stop", SERVICE_NAME)
    try:
        legacy_python = f"{cfg.ha_base.rstrip('/')}/bin/python3"
        if target.is_executable(legacy_python) and not target.is_executable(cfg.venv_python):
            _migrate_legacy_venv(target, cfg)

        pip_install(target, cfg, ["homeassistant"], upgrade=True, pre=beta)
        _migrate_unit(target, cfg)
    finally:
        # Bring Home Assistant back even when the upgrade failed.
        systemctl(target, "start", SERVICE_NAME)
    logger.info("==> Update successful: %s", ha_url(local_ip(target)))


def install_hacs(target, cfg: InstallerConfig) -> None:
    verify_debian13(target)
    require_installation(target, cfg)

    logger.info("==> Installing Home Assistant Community Store (HACS)")
    apt_update(target)
    apt_install(target, ["wget", "unzip"])
    target.run(
        [
            "sudo",
            "-u",
            cfg.ha_user,
            "-H",
            "sh",
            "-c",
            f"cd {shlex.quote(cfg.ha_config)} && wget -qO - {HACS_INSTALLER_URL} | bash -",
        ]
    )
    logger.info("Restart Home Assistant and clear the browser cache, then add the HACS integration.")


def latest_filebrowser_tag(session: requests.Session) -> str:
    r = session.get(FILEBROWSER_RELEASE_API, timeout=HTTP_TIMEOUT)
    r.raise_for_status()
    tag = (r.json() or {}).get("tag_name")
    if not tag:
        raise InstallerError("FileBrowser release lookup returned no tag_name")
    return str(tag)


def download_filebrowser(session: requests.Session, tag: str, dest_dir: str = FILEBROWSER_BIN_DIR) -> str:
    url = FILEBROWSER_ASSET_URL.format(tag=tag)
    logger.info("Downloading %s", url)
    with tempfile.TemporaryDirectory(prefix="hacore-fb-") as tmp:
        archive = os.path.join(tmp, "filebrowser.tar.gz")
        with session.get(url, stream=True, timeout=HTTP_TIMEOUT) as r:
            r.raise_for_status()
            with open(archive, "wb") as f:
                for chunk in r.iter_content(chunk_size=1 << 16):
                    f.write(chunk)
        with tarfile.open(archive, "r:gz") as tar:
            src = tar.extractfile("filebrowser")
            if src is None:
                raise InstallerError("filebrowser binary missing from release archive")
            data = src.read()
    path = os.path.join(dest_dir, "filebrowser")
    # The running service keeps the old binary busy; swap the directory entry instead.
    fd, tmp = tempfile.mkstemp(prefix=".filebrowser.", dir=dest_dir)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.chmod(tmp, 0o755)
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp)
        raise
    return path


def render_filebrowser_unit(cfg: InstallerConfig) -> str:
    return "\n".join(
        [
            "[Unit]",
            "Description=Filebrowser",
            "After=network-online.target",
            "",
            "[Service]",
            "User=root",
            "WorkingDirectory=/root/",
            f"ExecStart={FILEBROWSER_BIN_DIR}/filebrowser -d {FILEBROWSER_DB} -r {cfg.ha_config}",
            "",
            "[Install]",
            "WantedBy=default.target",
            "",
        ]
    )


def install_filebrowser(target, cfg: InstallerConfig, *, noauth: bool = False) -> None:
    verify_debian13(target)
    require_installation(target, cfg)

    logger.info("==> Installing FileBrowser")
    if cfg.dry_run:
        logger.info("Would download the latest FileBrowser release to %s", FILEBROWSER_BIN_DIR)
    else:
        with requests.Session() as session:
            try:
                tag = latest_filebrowser_tag(session)
                download_filebrowser(session, tag)
            except requests.RequestException as e:
                raise InstallerError(f"FileBrowser download failed: {e}") from e
            except OSError as e:
                raise InstallerError(f"FileBrowser install to {FILEBROWSER_BIN_DIR} failed: {e}") from e

    if target.path_exists(FILEBROWSER_DB):
        logger.info("FileBrowser database %s exists; keeping its users", FILEBROWSER_DB)
        install_unit(target, "filebrowser", render_filebrowser_unit(cfg))
        # Pick up the new binary.
        systemctl(target, "restart", "filebrowser")
        return

    fb = [f"{FILEBROWSER_BIN_DIR}/filebrowser", "-d", FILEBROWSER_DB]
    target.run([*fb, "config", "init", "-a", "0.0.0.0"])
    target.run([*fb, "config", "set", "-a", "0.0.0.0"])
    if noauth:
        target.run([*fb, "config", "set", "--auth.method=noauth"])
        target.run([*fb, "users", "add", "ID", "1", "--perm.admin"])
        credentials = "no authentication"
    else:
        password = generate_password()
        target.run([*fb, "users", "add", "admin", password, "--perm.admin"])
        credentials = f"admin|{password}"

    install_unit(target, "filebrowser", render_filebrowser_unit(cfg))
    logger.info("==> FileBrowser: http://%s:%d (%s)", local_ip(target) or "<ct-ip>", FILEBROWSER_PORT, credentials)


def run_update(target, cfg: InstallerConfig, action: str, *, beta: bool = False, noauth: bool = False) -> None:
    if action == "core":
        update_core(target, cfg, beta=beta)
    elif action == "hacs":
        install_hacs(target, cfg)
    elif action == "filebrowser":
        install_filebrowser(target, cfg, noauth=noauth)
    else:
        raise InstallerError(f"Unknown update action {action!r} (expected one of {', '.join(UPDATE_CHOICES)})")
