from __future__ import annotations

import logging
from typing import Any, Dict

from ..config import config_from_state
from ..lib.pkg import HA_PYTHON_PACKAGES, pip_install, upgrade_tooling
from ..lib.target import target_from_state

logger = logging.getLogger(__name__)


class InstallHomeAssistantStep:
    step_id = "50_install_homeassistant"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = config_from_state(state)
        target = target_from_state(state)

        logger.info("==> Installing Home Assistant Core into venv")
        upgrade_tooling(target, cfg)
        pip_install(target, cfg, HA_PYTHON_PACKAGES)
        return state
