from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

from ..config import config_from_state
from ..errors import PreconditionError
from ..lib.command import need_cmd

logger = logging.getLogger(__name__)

HOST_COMMANDS = ("pct", "pveam", "pvesm")


class HostPreflightStep:
    step_id = "host_10_preflight"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = config_from_state(state)

        if cfg.install_payload and not Path(cfg.install_payload).is_file():
            raise PreconditionError(f"INSTALL_PAYLOAD not found: {cfg.install_payload}")

        if cfg.dry_run:
            logger.info("Dry run: skipping host command checks")
            return state

        for name in HOST_COMMANDS:
            need_cmd(name)
        return state
