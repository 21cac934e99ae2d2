from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

from ..config import config_from_state
from ..lib.target import target_from_state

logger = logging.getLogger(__name__)

PAYLOAD_PATH = "/root/hacore-install.sh"


class RunPayloadStep:
    """Run a user-supplied install script in the container instead of the built-in steps."""

    step_id = "host_60_run_payload"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = config_from_state(state)
        if not cfg.install_payload:
            raise RuntimeError("config.install_payload missing")
        target = target_from_state(state)

        logger.info("==> Running install payload %s in %s", cfg.install_payload, target.describe())
        target.write_file(PAYLOAD_PATH, Path(cfg.install_payload).read_text(encoding="utf-8"), mode=0o755)
        target.run(["bash", PAYLOAD_PATH])
        return state
