from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.pkg import HA_SYSTEM_PACKAGES, apt_install, apt_update
from ..lib.target import target_from_state

logger = logging.getLogger(__name__)


class InstallPackagesStep:
    step_id = "20_install_packages"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        target = target_from_state(state)

        apt_update(target)
        apt_install(target, HA_SYSTEM_PACKAGES)

        logger.info("Installed %d system packages", len(HA_SYSTEM_PACKAGES))
        return state
