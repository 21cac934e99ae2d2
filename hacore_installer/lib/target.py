from __future__ import annotations

import logging
import os
import shlex
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence

from .command import CmdResult, has_cmd, run_cmd

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocalTarget:
    """Run installer commands on this machine (in-container mode)."""

    dry_run: bool = False

    def describe(self) -> str:
        return "local"

    def run(
        self,
        argv: Sequence[str],
        *,
        check: bool = True,
        env: Mapping[str, str] | None = None,
        input_text: str | None = None,
    ) -> CmdResult:
        return run_cmd(argv, check=check, env=env, input_text=input_text, dry_run=self.dry_run)

    def has_command(self, name: str) -> bool:
        if self.dry_run:
            return True
        return has_cmd(name)

    def path_exists(self, path: str) -> bool:
        return Path(path).exists()

    def is_executable(self, path: str) -> bool:
        return os.access(path, os.X_OK) and Path(path).is_file()

    def read_file(self, path: str) -> Optional[str]:
        try:
            return Path(path).read_text(encoding="utf-8")
        except OSError:
            return None

    def write_file(self, path: str, contents: str, *, mode: int = 0o644) -> None:
        p = Path(path)
        if self.dry_run:
            logger.info("Would write %s", str(p))
            return
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(contents, encoding="utf-8")
        p.chmod(mode)


@dataclass(frozen=True)
class ContainerTarget:
    """Run installer commands inside a Proxmox container via pct."""

    ctid: str
    dry_run: bool = False

    def describe(self) -> str:
        return f"ct:{self.ctid}"

    def run(
        self,
        argv: Sequence[str],
        *,
        check: bool = True,
        env: Mapping[str, str] | None = None,
        input_text: str | None = None,
    ) -> CmdResult:
        # pct exec does not forward the caller's environment.
        prefix = ["env", *[f"{k}={v}" for k, v in (env or {}).items()]] if env else []
        return run_cmd(
            ["pct", "exec", self.ctid, "--", *prefix, *argv],
            check=check,
            input_text=input_text,
            dry_run=self.dry_run,
        )

    def has_command(self, name: str) -> bool:
        r = self.run(["sh", "-c", f"command -v {shlex.quote(name)}"], check=False)
        return r.ok

    def path_exists(self, path: str) -> bool:
        return self.run(["test", "-e", path], check=False).ok

    def is_executable(self, path: str) -> bool:
        return self.run(["test", "-x", path], check=False).ok

    def read_file(self, path: str) -> Optional[str]:
        r = self.run(["cat", path], check=False)
        if not r.ok:
            return None
        return r.stdout

    def write_file(self, path: str, contents: str, *, mode: int = 0o644) -> None:
        fd, tmp = tempfile.mkstemp(prefix="hacore-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(contents)
            self.run(["mkdir", "-p", os.path.dirname(path) or "/"])
            run_cmd(
                ["pct", "push", self.ctid, tmp, path, "--perms", format(mode, "o")],
                dry_run=self.dry_run,
            )
        finally:
            os.unlink(tmp)


def target_from_state(state: Dict[str, Any]):
    """Pick where in-container steps execute.

    Host mode records the CTID under execution.decisions once the container
    exists; without it the steps run locally.
    """

    cfg = state.get("config") or {}
    decisions = (state.get("execution") or {}).get("decisions") or {}
    dry_run = bool(cfg.get("dry_run", False))
    ctid = decisions.get("ctid")
    if ctid:
        return ContainerTarget(ctid=str(ctid), dry_run=dry_run)
    return LocalTarget(dry_run=dry_run)
