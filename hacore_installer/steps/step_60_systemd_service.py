from __future__ import annotations

import logging
from typing import Any, Dict

from ..config import config_from_state
from ..lib.systemd import SERVICE_NAME, install_unit, render_unit
from ..lib.target import target_from_state

logger = logging.getLogger(__name__)


class SystemdServiceStep:
    step_id = "60_systemd_service"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = config_from_state(state)
        target = target_from_state(state)

        install_unit(target, SERVICE_NAME, render_unit(cfg))

        logger.info("==> Installed. Check status with: systemctl status %s -l --no-pager", SERVICE_NAME)
        logger.info("==> Logs: journalctl -u %s -f", SERVICE_NAME)
        return state
