from __future__ import annotations

import logging
import re
import secrets
import string
import time
from pathlib import Path
from typing import List, Optional

from ..config import InstallerConfig, parse_ipcfg
from .command import has_cmd, run_cmd

logger = logging.getLogger(__name__)

PVE_CONFIG_DIR = "/etc/pve"
DEBIAN13_TEMPLATE_RE = re.compile(r"debian-13-standard_.*amd64")
PASSWORD_ALPHABET = string.ascii_letters + string.digits
HA_PORT = 8123


def is_proxmox_host() -> bool:
    return Path(PVE_CONFIG_DIR).is_dir() and has_cmd("pct")


def _table_rows(output: str) -> List[List[str]]:
    """Split tabular CLI output into columns, dropping the header line."""

    lines = [ln for ln in output.splitlines() if ln.strip()]
    return [ln.split() for ln in lines[1:]]


def pick_storage(content: str, *, dry_run: bool = False) -> Optional[str]:
    """First storage that supports the given content type (vztmpl, rootdir)."""

    r = run_cmd(["pvesm", "status", "-content", content], check=False, dry_run=dry_run)
    if dry_run:
        return "local" if content == "vztmpl" else "local-lvm"
    if not r.ok:
        return None
    rows = _table_rows(r.stdout)
    return rows[0][0] if rows else None


def pick_debian13_template(*, dry_run: bool = False) -> Optional[str]:
    run_cmd(["pveam", "update"], check=False, dry_run=dry_run)
    r = run_cmd(["pveam", "available", "-section", "system"], check=False, dry_run=dry_run)
    if dry_run:
        return "debian-13-standard_13.1-2_amd64.tar.zst"
    matches = []
    for line in r.stdout.splitlines():
        cols = line.split()
        if len(cols) >= 2 and DEBIAN13_TEMPLATE_RE.search(line):
            matches.append(cols[1])
    return matches[-1] if matches else None


def template_is_downloaded(storage: str, template: str, *, dry_run: bool = False) -> bool:
    r = run_cmd(["pveam", "list", storage], check=False, dry_run=dry_run)
    if not r.ok:
        return False
    # pveam list prints volume ids: <storage>:vztmpl/<template>
    volid = f"{storage}:vztmpl/{template}"
    return any(row and row[0] in {volid, template} for row in _table_rows(r.stdout))


def download_template(storage: str, template: str, *, dry_run: bool = False) -> None:
    run_cmd(["pveam", "download", storage, template], dry_run=dry_run)


def next_ctid(*, dry_run: bool = False) -> Optional[str]:
    if not has_cmd("pvesh") and not dry_run:
        return None
    r = run_cmd(["pvesh", "get", "/cluster/nextid"], check=False, dry_run=dry_run)
    if dry_run:
        return "100"
    ctid = r.stdout.strip().strip('"')
    return ctid if r.ok and ctid.isdigit() else None


def build_net0(bridge: str, ipcfg: str) -> str:
    ip, gw = parse_ipcfg(ipcfg)
    net0 = f"name=eth0,bridge={bridge},ip={ip}"
    if gw:
        net0 += f",gw={gw}"
    return net0


def build_features(cfg: InstallerConfig) -> str:
    # keyctl is only accepted for unprivileged containers.
    return "nesting=1,keyctl=1" if cfg.unprivileged else "nesting=1"


def build_create_argv(
    cfg: InstallerConfig,
    *,
    ctid: str,
    template_storage: str,
    root_storage: str,
    template: str,
    password_file: str,
) -> List[str]:
    argv = [
        "pct",
        "create",
        ctid,
        f"{template_storage}:vztmpl/{template}",
        "--ostype",
        "debian",
        "--arch",
        "amd64",
        "--hostname",
        cfg.hostname,
        "--cores",
        str(cfg.cores),
        "--memory",
        str(cfg.ram_mb),
        "--swap",
        "0",
        "--rootfs",
        f"{root_storage}:{cfg.disk_gb}",
        "--net0",
        build_net0(cfg.bridge, cfg.ipcfg),
        "--features",
        build_features(cfg),
        "--unprivileged",
        str(cfg.unprivileged),
        "--onboot",
        str(cfg.onboot),
        "--timezone",
        cfg.timezone,
    ]
    if cfg.tags:
        argv += ["--tags", cfg.tags]
    argv += ["--password-file", password_file]
    return argv


def generate_password(length: int = 20) -> str:
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def container_exists(ctid: str, *, dry_run: bool = False) -> bool:
    if dry_run:
        return False
    return run_cmd(["pct", "status", ctid], check=False).ok


def container_ip(ctid: str, *, dry_run: bool = False) -> Optional[str]:
    r = run_cmd(["pct", "exec", ctid, "--", "hostname", "-I"], check=False, dry_run=dry_run)
    if not r.ok:
        return None
    parts = r.stdout.split()
    return parts[0] if parts else None


def wait_for_network(ctid: str, *, attempts: int = 30, delay: float = 2.0, dry_run: bool = False) -> Optional[str]:
    """Poll the container until it reports an address; None on timeout."""

    for _ in range(attempts):
        ip = container_ip(ctid, dry_run=dry_run)
        if ip or dry_run:
            return ip
        time.sleep(delay)
    return None


def ha_url(ip: Optional[str]) -> str:
    return f"http://{ip or '<ct-ip>'}:{HA_PORT}"
