from __future__ import annotations

import logging
import os
import tempfile
from typing import Any, Dict

from ..config import config_from_state
from ..lib.command import run_cmd
from ..lib.proxmox import build_create_argv, generate_password
from ..state_store import get_decision, record_decision

logger = logging.getLogger(__name__)


class CreateContainerStep:
    step_id = "host_40_create_container"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = config_from_state(state)
        ctid = get_decision(state, "ctid")
        if not ctid:
            raise RuntimeError("execution.decisions.ctid missing; run host_20_select_resources first")

        password = cfg.ct_password or generate_password()

        fd, pwfile = tempfile.mkstemp(prefix="hacore-pw-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(password + "\n")
            argv = build_create_argv(
                cfg,
                ctid=str(ctid),
                template_storage=get_decision(state, "template_storage"),
                root_storage=get_decision(state, "root_storage"),
                template=get_decision(state, "template"),
                password_file=pwfile,
            )
            run_cmd(argv, dry_run=cfg.dry_run)
        finally:
            os.unlink(pwfile)

        record_decision(state, "root_password", password)
        return state
