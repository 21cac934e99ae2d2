from __future__ import annotations

import logging
from typing import Any, Dict

from ..config import config_from_state
from ..lib.proxmox import download_template, template_is_downloaded
from ..state_store import get_decision

logger = logging.getLogger(__name__)


class DownloadTemplateStep:
    step_id = "host_30_download_template"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = config_from_state(state)
        storage = get_decision(state, "template_storage")
        template = get_decision(state, "template")
        if not storage or not template:
            raise RuntimeError("execution.decisions template/template_storage missing; run host_20_select_resources first")

        if template_is_downloaded(storage, template, dry_run=cfg.dry_run):
            logger.info("Template %s already present on %s", template, storage)
            return state

        logger.info("==> Downloading template to %s...", storage)
        download_template(storage, template, dry_run=cfg.dry_run)
        return state
