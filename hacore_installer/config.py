from __future__ import annotations

import dataclasses
import ipaddress
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .errors import ConfigError

# Environment variable -> InstallerConfig field
ENV_VARS = {
    "CTID": "ctid",
    "HOSTNAME_CT": "hostname",
    "CORES": "cores",
    "RAM_MB": "ram_mb",
    "DISK_GB": "disk_gb",
    "BRIDGE": "bridge",
    "IPCFG": "ipcfg",
    "UNPRIVILEGED": "unprivileged",
    "ONBOOT": "onboot",
    "TIMEZONE": "timezone",
    "TAGS": "tags",
    "CT_PASSWORD": "ct_password",
    "HA_USER": "ha_user",
    "HA_GROUP": "ha_group",
    "HA_BASE": "ha_base",
    "HA_VENV": "ha_venv",
    "HA_CONFIG": "ha_config",
    "PKG_TOOL": "pkg_tool",
    "INSTALL_PAYLOAD": "install_payload",
}

_POSITIVE_INTS = ("cores", "ram_mb", "disk_gb")
_FLAGS = ("unprivileged", "onboot")
PKG_TOOLS = ("pip", "uv")


@dataclass(frozen=True)
class InstallerConfig:
    ctid: Optional[str] = None
    hostname: str = "homeassistant-core"
    cores: int = 4
    ram_mb: int = 4096
    disk_gb: int = 32
    bridge: str = "vmbr0"
    ipcfg: str = "dhcp"
    unprivileged: int = 0
    onboot: int = 1
    timezone: str = "host"
    tags: str = "automation;smarthome"
    ct_password: Optional[str] = None

    ha_user: str = "homeassistant"
    ha_group: str = "homeassistant"
    ha_base: str = "/srv/homeassistant"
    ha_venv: str = "/srv/homeassistant/.venv"
    ha_config: str = "/var/lib/homeassistant"

    pkg_tool: str = "pip"
    install_payload: Optional[str] = None
    dry_run: bool = False

    @property
    def venv_bin(self) -> str:
        return f"{self.ha_venv.rstrip('/')}/bin"

    @property
    def venv_python(self) -> str:
        return f"{self.venv_bin}/python"

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "InstallerConfig":
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

        data: Dict[str, Any] = {}
        for key, value in values.items():
            if value is None or value == "":
                continue
            if key in _POSITIVE_INTS:
                data[key] = _parse_int(key, value, minimum=1)
            elif key in _FLAGS:
                data[key] = _parse_flag(key, value)
            elif key == "dry_run":
                data[key] = bool(value)
            else:
                data[key] = str(value)

        cfg = cls(**data)
        cfg.validate()
        return cfg

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "InstallerConfig":
        return cls.from_mapping(_env_values(os.environ if environ is None else environ))

    def validate(self) -> None:
        parse_ipcfg(self.ipcfg)
        if self.pkg_tool not in PKG_TOOLS:
            raise ConfigError(f"PKG_TOOL must be one of {', '.join(PKG_TOOLS)}, got {self.pkg_tool!r}")
        if self.ctid is not None and not self.ctid.isdigit():
            raise ConfigError(f"CTID must be numeric, got {self.ctid!r}")
        for name in ("ha_base", "ha_venv", "ha_config"):
            if not getattr(self, name).startswith("/"):
                raise ConfigError(f"{name.upper()} must be an absolute path")

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    def replace(self, **changes: Any) -> "InstallerConfig":
        return dataclasses.replace(self, **changes)


def _env_values(environ: Mapping[str, str]) -> Dict[str, Any]:
    return {field: environ[var] for var, field in ENV_VARS.items() if environ.get(var, "") != ""}


def _parse_int(key: str, value: Any, *, minimum: int) -> int:
    try:
        n = int(str(value).strip())
    except ValueError as e:
        raise ConfigError(f"{key} must be an integer, got {value!r}") from e
    if n < minimum:
        raise ConfigError(f"{key} must be >= {minimum}, got {n}")
    return n


def _parse_flag(key: str, value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    s = str(value).strip()
    if s not in {"0", "1"}:
        raise ConfigError(f"{key} must be 0 or 1, got {value!r}")
    return int(s)


def parse_ipcfg(ipcfg: str) -> tuple[str, Optional[str]]:
    """Split an IP configuration string into (ip, gateway).

    Accepts "dhcp" or "ip/cidr[,gw=addr]".
    """

    if ipcfg == "dhcp":
        return "dhcp", None

    ip_part, sep, gw_part = ipcfg.partition(",gw=")
    try:
        ipaddress.ip_interface(ip_part)
        if "/" not in ip_part:
            raise ValueError("missing prefix length")
        if sep:
            ipaddress.ip_address(gw_part)
    except ValueError as e:
        raise ConfigError(
            f"IPCFG must be 'dhcp' or 'ip/cidr,gw=addr', got {ipcfg!r} ({e})"
        ) from e
    return ip_part, (gw_part if sep else None)


def load_installer_config(
    path: str | None = None,
    environ: Mapping[str, str] | None = None,
    *,
    dry_run: bool = False,
) -> InstallerConfig:
    """Layer defaults < YAML file < environment."""

    values: Dict[str, Any] = {}
    if path:
        values.update(_load_yaml(path))
    values.update(_env_values(os.environ if environ is None else environ))
    if dry_run:
        values["dry_run"] = True
    return InstallerConfig.from_mapping(values)


def _load_yaml(path: str) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config file not found: {path}")

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ConfigError("installer config must be YAML")

    import yaml

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping/object")
    return {str(k).lower(): v for k, v in raw.items()}


def config_from_state(state: Dict[str, Any]) -> InstallerConfig:
    return InstallerConfig.from_mapping(state.get("config") or {})
