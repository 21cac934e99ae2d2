from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Any, Dict, List, Optional

from .config import load_installer_config
from .errors import ConfigError, InstallerError
from .lib.proxmox import is_proxmox_host
from .lib.target import LocalTarget
from .logging_utils import DEFAULT_LOG_PATH, configure_logging
from .maintenance import UPDATE_CHOICES, run_update
from .pipeline import run_pipeline
from .state_store import ensure_defaults, load_state, save_state
from .steps import (
    CreateContainerStep,
    CreateVenvStep,
    DownloadTemplateStep,
    HostPreflightStep,
    InstallHomeAssistantStep,
    InstallPackagesStep,
    PreflightStep,
    ReportStep,
    RunPayloadStep,
    SelectResourcesStep,
    ServiceAccountStep,
    StartContainerStep,
    SystemdServiceStep,
)

logger = logging.getLogger(__name__)

MODE_HOST = "host"
MODE_INSTALL = "install"

DEFAULT_STATE_DIR = "/var/lib/hacore-installer"
DEFAULT_STATE_PATHS = {
    MODE_HOST: f"{DEFAULT_STATE_DIR}/host-state.json",
    MODE_INSTALL: f"{DEFAULT_STATE_DIR}/state.json",
}

USAGE_HINT = "use --proxmox, --create-ct, or --install-only"


class UsageError(ConfigError):
    pass


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise UsageError(message)


def build_container_steps():
    return [
        PreflightStep(),
        InstallPackagesStep(),
        ServiceAccountStep(),
        CreateVenvStep(),
        InstallHomeAssistantStep(),
        SystemdServiceStep(),
    ]


def build_host_steps(*, install_payload: Optional[str] = None):
    install = [RunPayloadStep()] if install_payload else build_container_steps()
    return [
        HostPreflightStep(),
        SelectResourcesStep(),
        DownloadTemplateStep(),
        CreateContainerStep(),
        StartContainerStep(),
        *install,
        ReportStep(),
    ]


def resolve_mode(requested: Optional[str]) -> str:
    """--install-only is honored as-is; anything else creates a CT only on a Proxmox host."""

    if requested == MODE_INSTALL:
        return MODE_INSTALL
    if is_proxmox_host():
        return MODE_HOST
    if requested == MODE_HOST:
        logger.warning("Not a Proxmox host; running the in-container installer instead")
    return MODE_INSTALL


def run(
    *,
    mode: Optional[str] = None,
    config_path: Optional[str] = None,
    state_path: Optional[str] = None,
    log_path: str = DEFAULT_LOG_PATH,
    start_at: Optional[str] = None,
    stop_after: Optional[str] = None,
    force: bool = False,
    dry_run: bool = False,
    environ: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Run the installer pipeline, persisting state for resume.

    mode is the requested mode (None when no flag was given); see resolve_mode.
    """

    actual_log_path = configure_logging(log_path=log_path)
    mode = resolve_mode(mode)
    cfg = load_installer_config(config_path, environ, dry_run=dry_run)

    state_path = state_path or DEFAULT_STATE_PATHS[mode]
    state = ensure_defaults(load_state(state_path))
    state["config"] = cfg.to_dict()
    exe = state["execution"]
    exe["mode"] = mode
    exe.setdefault("paths", {})["log_path_actual"] = actual_log_path

    if mode == MODE_HOST:
        steps = build_host_steps(install_payload=cfg.install_payload)
    else:
        steps = build_container_steps()

    try:
        result = run_pipeline(
            state=state,
            steps=steps,
            start_at=start_at,
            stop_after=stop_after,
            force=force,
        )
        state = result.state
        exe = state.setdefault("execution", {})
        exe.setdefault("summary", {})["ran_steps"] = result.ran_steps
        exe.setdefault("summary", {})["skipped_steps"] = result.skipped_steps
        return state
    except InstallerError:
        logger.debug("Installer failed at %s", (state.get("execution") or {}).get("current_step"))
        raise
    except Exception:
        logger.exception("Installer failed")
        raise
    finally:
        if not dry_run:
            save_state(state_path, state)


def run_maintenance(
    *,
    action: str,
    config_path: Optional[str] = None,
    log_path: str = DEFAULT_LOG_PATH,
    beta: bool = False,
    noauth: bool = False,
    dry_run: bool = False,
    environ: Optional[Dict[str, str]] = None,
) -> None:
    configure_logging(log_path=log_path)
    cfg = load_installer_config(config_path, environ, dry_run=dry_run)
    run_update(LocalTarget(dry_run=dry_run), cfg, action, beta=beta, noauth=noauth)


def build_parser() -> argparse.ArgumentParser:
    p = _ArgumentParser(
        prog="hacore-installer",
        allow_abbrev=False,
        description="Install Home Assistant Core in a Debian 13 LXC on Proxmox VE.",
        epilog="Container and install settings come from environment variables (CTID, CORES, RAM_MB, HA_VENV, ...).",
    )
    mode = p.add_mutually_exclusive_group()
    mode.add_argument(
        "--proxmox",
        "--create-ct",
        dest="mode",
        action="store_const",
        const=MODE_HOST,
        help="Create a container, then install inside it (default on a Proxmox host)",
    )
    mode.add_argument(
        "--install-only",
        dest="mode",
        action="store_const",
        const=MODE_INSTALL,
        help="Run the in-container installer on this machine",
    )
    mode.add_argument(
        "--update",
        nargs="?",
        const="core",
        choices=UPDATE_CHOICES,
        default=None,
        help="Maintain an existing install: core (default), hacs or filebrowser",
    )
    p.add_argument("--config", default=None, help="YAML file with installer settings (env vars override it)")
    p.add_argument("--state", default=None, help="Path to installer state (json|yaml)")
    p.add_argument("--log", default=DEFAULT_LOG_PATH, help="Path to installer log")
    p.add_argument("--start-at", default=None, help="Start at step_id (e.g. 40_create_venv)")
    p.add_argument("--stop-after", default=None, help="Stop after step_id")
    p.add_argument("--force", action="store_true", help="Re-run steps even if marked completed")
    p.add_argument("--dry-run", action="store_true", help="Log commands without running them")
    p.add_argument("--beta", action="store_true", help="With --update core: install the beta release")
    p.add_argument("--filebrowser-noauth", action="store_true", help="With --update filebrowser: disable login")
    return p


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    args, extras = build_parser().parse_known_args(argv)
    if extras:
        raise UsageError(f"Unknown argument: {extras[0]} ({USAGE_HINT})")
    return args


def main(argv: Optional[list[str]] = None) -> int:
    try:
        args = parse_args(argv)
    except UsageError as e:
        sys.stderr.write(f"ERROR: {e}\n")
        return 1

    try:
        if args.update:
            run_maintenance(
                action=args.update,
                config_path=args.config,
                log_path=args.log,
                beta=args.beta,
                noauth=args.filebrowser_noauth,
                dry_run=args.dry_run,
                environ=dict(os.environ),
            )
        else:
            run(
                mode=args.mode,
                config_path=args.config,
                state_path=args.state,
                log_path=args.log,
                start_at=args.start_at,
                stop_after=args.stop_after,
                force=args.force,
                dry_run=args.dry_run,
                environ=dict(os.environ),
            )
    except InstallerError as e:
        logger.error("%s", e)
        return 1
    return 0
