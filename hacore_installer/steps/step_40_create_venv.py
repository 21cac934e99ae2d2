from __future__ import annotations

import logging
from typing import Any, Dict

from ..config import config_from_state
from ..lib.pkg import create_venv
from ..lib.target import target_from_state
from ..state_store import record_decision

logger = logging.getLogger(__name__)


class CreateVenvStep:
    step_id = "40_create_venv"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = config_from_state(state)
        target = target_from_state(state)

        if not cfg.dry_run and target.is_executable(cfg.venv_python):
            logger.info("venv already present at %s", cfg.ha_venv)
            record_decision(state, "venv_created", False)
            return state

        logger.info("==> Creating venv at %s (%s)", cfg.ha_venv, cfg.pkg_tool)
        create_venv(target, cfg)
        r = target.run(["chown", "-R", f"{cfg.ha_user}:{cfg.ha_group}", cfg.ha_venv], check=False)
        if not r.ok:
            logger.warning("chown of %s failed: %s", cfg.ha_venv, r.stderr.strip())

        record_decision(state, "venv_created", True)
        return state
