from __future__ import annotations

import logging
from typing import Any, Dict

from ..config import config_from_state
from ..errors import PreconditionError
from ..lib.proxmox import container_exists, next_ctid, pick_debian13_template, pick_storage
from ..state_store import record_decision

logger = logging.getLogger(__name__)


class SelectResourcesStep:
    step_id = "host_20_select_resources"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = config_from_state(state)
        dry_run = cfg.dry_run

        tmpl_storage = pick_storage("vztmpl", dry_run=dry_run)
        root_storage = pick_storage("rootdir", dry_run=dry_run)
        if not tmpl_storage:
            raise PreconditionError("No storage found for templates (vztmpl).")
        if not root_storage:
            raise PreconditionError("No storage found for containers (rootdir).")

        template = pick_debian13_template(dry_run=dry_run)
        if not template:
            raise PreconditionError("Could not find a Debian 13 template via pveam.")

        ctid = cfg.ctid or next_ctid(dry_run=dry_run)
        if not ctid:
            raise PreconditionError("CTID not set and could not auto-detect. Set CTID=#### and retry.")
        if container_exists(ctid, dry_run=dry_run):
            raise PreconditionError(f"CT {ctid} already exists. Set CTID to a free id and retry.")

        record_decision(state, "template_storage", tmpl_storage)
        record_decision(state, "root_storage", root_storage)
        record_decision(state, "template", template)
        record_decision(state, "ctid", ctid)

        logger.info("==> Using template: %s", template)
        logger.info("==> Template storage: %s, Rootfs storage: %s", tmpl_storage, root_storage)
        logger.info("==> Creating CTID: %s (hostname: %s)", ctid, cfg.hostname)
        return state
