from __future__ import annotations

import logging
from typing import Any, Dict

from ..config import config_from_state
from ..lib.command import run_cmd
from ..lib.proxmox import wait_for_network
from ..state_store import get_decision, record_decision

logger = logging.getLogger(__name__)


class StartContainerStep:
    step_id = "host_50_start_container"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = config_from_state(state)
        ctid = str(get_decision(state, "ctid"))

        logger.info("==> Starting CT %s", ctid)
        run_cmd(["pct", "start", ctid], dry_run=cfg.dry_run)

        ip = wait_for_network(ctid, dry_run=cfg.dry_run)
        if ip:
            logger.info("CT %s is up at %s", ctid, ip)
        else:
            logger.warning("CT %s has no address yet; continuing", ctid)
        record_decision(state, "ip", ip)
        return state
