from __future__ import annotations

import logging
from typing import Any, Dict

from ..config import config_from_state
from ..lib.proxmox import container_ip, ha_url
from ..state_store import get_decision, record_decision

logger = logging.getLogger(__name__)


class ReportStep:
    step_id = "host_90_report"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = config_from_state(state)
        ctid = str(get_decision(state, "ctid"))

        ip = container_ip(ctid, dry_run=cfg.dry_run) or get_decision(state, "ip")
        record_decision(state, "ip", ip)

        logger.info("==> Done.")
        logger.info("==> CTID: %s", ctid)
        logger.info("==> Root password: %s", get_decision(state, "root_password"))
        logger.info("==> Home Assistant URL: %s", ha_url(ip))
        return state
