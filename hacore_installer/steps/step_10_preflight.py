from __future__ import annotations

import logging
from typing import Any, Dict

from ..config import config_from_state
from ..lib.osinfo import require_commands, verify_debian13, verify_python313
from ..lib.target import target_from_state
from ..state_store import record_decision

logger = logging.getLogger(__name__)

REQUIRED_COMMANDS = ("apt-get", "systemctl", "python3")


class PreflightStep:
    step_id = "10_preflight"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = config_from_state(state)
        target = target_from_state(state)

        logger.info("==> Installing Home Assistant Core (venv) + systemd service on %s", target.describe())

        if cfg.dry_run:
            # Checks return nothing in dry-run; don't fail planning on them.
            logger.info("Dry run: skipping platform verification")
            return state

        require_commands(target, REQUIRED_COMMANDS)
        os_info = verify_debian13(target)
        py_mm = verify_python313(target)

        record_decision(state, "os", f"{os_info.get('ID')} {os_info.get('VERSION_ID')}")
        record_decision(state, "python", py_mm)
        logger.info("Platform OK: Debian %s, python %s", os_info.get("VERSION_ID"), py_mm)
        return state
