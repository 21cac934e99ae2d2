from __future__ import annotations

import logging
from typing import Sequence

from ..config import InstallerConfig

logger = logging.getLogger(__name__)

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}

# Build toolchain and native libraries Home Assistant's wheels link against.
HA_SYSTEM_PACKAGES = [
    "ca-certificates",
    "curl",
    "git",
    "sudo",
    "mc",
    "tzdata",
    "python3",
    "python3-venv",
    "python3-pip",
    "python3-dev",
    "build-essential",
    "autoconf",
    "pkg-config",
    "libffi-dev",
    "libssl-dev",
    "libjpeg-dev",
    "zlib1g-dev",
    "libopenjp2-7",
    "libturbojpeg0-dev",
    "libtiff6",
    "ffmpeg",
    "liblapack3",
    "liblapack-dev",
    "libatlas-base-dev",
    "libpcap-dev",
    "libavdevice-dev",
    "libavformat-dev",
    "libavcodec-dev",
    "libavutil-dev",
    "libavfilter-dev",
    "libmariadb-dev-compat",
    "libmariadb-dev",
    "dbus-broker",
    "bluez",
]

HA_PYTHON_PACKAGES = [
    "homeassistant",
    "mysqlclient",
    "psycopg2-binary",
    "isal",
    "webrtcvad",
]

PIP_TOOLING = ["pip", "setuptools", "wheel"]

PYTHON_VERSION = "3.13"
UV_INSTALL_SCRIPT = "https://astral.sh/uv/install.sh"
# Shared location so the service user can run the interpreter uv downloads.
UV_ENV = {"UV_PYTHON_INSTALL_DIR": "/opt/uv/python"}


def apt_update(target) -> None:
    target.run(["apt-get", "update", "-y"], env=APT_ENV)


def apt_install(
    target,
    packages: Sequence[str],
    *,
    with_recommends: bool = False,
) -> None:
    if not packages:
        return
    argv = [
        "apt-get",
        "install",
        "-y",
    ]
    if not with_recommends:
        argv.append("--no-install-recommends")
    target.run([*argv, *packages], env=APT_ENV)


def ensure_uv(target) -> None:
    if target.has_command("uv"):
        return
    logger.info("Installing uv on %s", target.describe())
    target.run(
        [
            "sh",
            "-c",
            f"curl -LsSf {UV_INSTALL_SCRIPT} | env UV_INSTALL_DIR=/usr/local/bin INSTALLER_NO_MODIFY_PATH=1 sh",
        ]
    )


def create_venv(target, cfg: InstallerConfig) -> None:
    if cfg.pkg_tool == "uv":
        ensure_uv(target)
        target.run(["uv", "python", "install", PYTHON_VERSION], env=UV_ENV)
        target.run(["uv", "venv", cfg.ha_venv, "--python", PYTHON_VERSION], env=UV_ENV)
    else:
        target.run(["python3", "-m", "venv", cfg.ha_venv])


def _as_service_user(cfg: InstallerConfig, argv: Sequence[str]) -> list[str]:
    return ["sudo", "-u", cfg.ha_user, "-H", *argv]


def pip_install(
    target,
    cfg: InstallerConfig,
    packages: Sequence[str],
    *,
    upgrade: bool = False,
    pre: bool = False,
) -> None:
    """Install Python packages into the Home Assistant venv as the service user."""

    if not packages:
        return
    if cfg.pkg_tool == "uv":
        argv = ["uv", "pip", "install", "--python", cfg.venv_python]
    else:
        argv = [f"{cfg.venv_bin}/pip", "install", "--prefer-binary"]
    if upgrade:
        argv.append("--upgrade")
    if pre:
        argv.append("--pre")
    target.run(_as_service_user(cfg, [*argv, *packages]))


def upgrade_tooling(target, cfg: InstallerConfig) -> None:
    if cfg.pkg_tool == "uv":
        # uv-created venvs carry no pip; wheel is all the builds need.
        pip_install(target, cfg, ["wheel"], upgrade=True)
        return
    target.run(_as_service_user(cfg, [cfg.venv_python, "-m", "pip", "install", "--upgrade", *PIP_TOOLING]))
