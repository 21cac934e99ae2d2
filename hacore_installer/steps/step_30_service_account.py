from __future__ import annotations

import logging
from typing import Any, Dict

from ..config import config_from_state
from ..lib.target import target_from_state
from ..state_store import record_decision

logger = logging.getLogger(__name__)

# Kept for people expecting the classic config location.
LEGACY_CONFIG_LINK = "/root/.homeassistant"


class ServiceAccountStep:
    step_id = "30_service_account"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = config_from_state(state)
        target = target_from_state(state)

        # A dry run plans a fresh install; existence checks there would all succeed.
        exists = not cfg.dry_run and target.run(["id", "-u", cfg.ha_user], check=False).ok
        if exists:
            logger.info("Service user %s already exists", cfg.ha_user)
        else:
            target.run(
                [
                    "useradd",
                    "--system",
                    "--create-home",
                    "--home-dir",
                    cfg.ha_config,
                    "--shell",
                    "/usr/sbin/nologin",
                    cfg.ha_user,
                ]
            )
        record_decision(state, "service_user_created", not exists)

        target.run(["mkdir", "-p", cfg.ha_base, cfg.ha_config])
        r = target.run(
            ["chown", "-R", f"{cfg.ha_user}:{cfg.ha_group}", cfg.ha_base, cfg.ha_config],
            check=False,
        )
        if not r.ok:
            logger.warning("chown of %s and %s failed: %s", cfg.ha_base, cfg.ha_config, r.stderr.strip())

        target.run(["mkdir", "-p", "/root"])
        target.run(["ln", "-sfn", cfg.ha_config, LEGACY_CONFIG_LINK])
        return state
