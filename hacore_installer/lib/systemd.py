from __future__ import annotations

import logging

from ..config import InstallerConfig

logger = logging.getLogger(__name__)

SERVICE_NAME = "homeassistant"
UNIT_PATH = f"/etc/systemd/system/{SERVICE_NAME}.service"
SYSTEM_PATH = "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"


def render_unit(cfg: InstallerConfig) -> str:
    """Render the Home Assistant Core systemd unit for the configured venv."""

    return "\n".join(
        [
            "[Unit]",
            "Description=Home Assistant Core",
            "Wants=network-online.target",
            "After=network-online.target",
            "",
            "[Service]",
            "Type=simple",
            f"User={cfg.ha_user}",
            f"Group={cfg.ha_group}",
            f"WorkingDirectory={cfg.ha_config}",
            f'Environment="PATH={cfg.venv_bin}:{SYSTEM_PATH}"',
            f"ExecStart={cfg.venv_python} -m homeassistant --config {cfg.ha_config}",
            "Restart=on-failure",
            "RestartSec=5s",
            "",
            "[Install]",
            "WantedBy=multi-user.target",
            "",
        ]
    )


def migrate_legacy_unit(text: str, cfg: InstallerConfig) -> str:
    """Point a unit written for the old <base>/bin venv at the .venv layout.

    Returns the text unchanged when it does not reference the legacy layout.
    """

    legacy_bin = f"{cfg.ha_base.rstrip('/')}/bin"
    if f"ExecStart={legacy_bin}/python3" not in text:
        return text
    text = text.replace(f"ExecStart={legacy_bin}/python3", f"ExecStart={cfg.venv_python}")
    text = text.replace(f"PATH={legacy_bin}", f"PATH={cfg.venv_bin}")
    return text


def systemctl(target, *args: str, check: bool = True):
    return target.run(["systemctl", *args], check=check)


def install_unit(target, name: str, contents: str) -> None:
    path = f"/etc/systemd/system/{name}.service"
    logger.info("==> Writing %s", path)
    target.write_file(path, contents)
    systemctl(target, "daemon-reload")
    systemctl(target, "enable", "--now", name)
