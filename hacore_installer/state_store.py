from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in {"json", "yaml", "yml"}:
        return ext
    # Default to JSON for unknown extensions.
    return "json"


def load_state(path: str) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        return {}

    data: Dict[str, Any]
    if _detect_format(p) in {"yaml", "yml"}:
        import yaml

        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    else:
        data = json.loads(p.read_text(encoding="utf-8"))

    if not isinstance(data, dict):
        raise ValueError(f"State file must be an object/dict, got {type(data)}")

    return data


def save_state(path: str, state: Dict[str, Any]) -> None:
    """Write state atomically.

    The state may hold the container root password, so the file is created
    0600 (mkstemp) and moved into place; it is never readable by others.
    """

    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    if _detect_format(p) in {"yaml", "yml"}:
        import yaml

        text = yaml.safe_dump(state, sort_keys=False) + "\n"
    else:
        text = json.dumps(state, indent=2, sort_keys=True) + "\n"

    fd, tmp = tempfile.mkstemp(prefix=f".{p.name}.", dir=str(p.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp, p)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp)
        raise


def ensure_defaults(state: Dict[str, Any]) -> Dict[str, Any]:
    """Fill required keys without overriding recorded values.

    A state left by a run that finished is reset to a fresh execution, so
    the next run walks every step again and relies on each step's own
    existence checks. An unfinished state is kept so the run resumes.
    """

    state.setdefault("version", 1)
    state.setdefault("config", {})
    state.setdefault("execution", {})

    exe = state["execution"]
    if exe.get("finished"):
        logger.info("Previous run finished; starting a fresh pass")
        exe.clear()

    exe.setdefault("mode", None)
    exe.setdefault("current_step", None)
    exe.setdefault("completed_steps", [])
    exe.setdefault("decisions", {})
    exe.setdefault("errors", [])
    exe.setdefault("finished", False)

    return state


def mark_step_completed(state: Dict[str, Any], step_id: str) -> None:
    exe = state.setdefault("execution", {})
    completed = exe.setdefault("completed_steps", [])
    if step_id not in completed:
        completed.append(step_id)


def is_step_completed(state: Dict[str, Any], step_id: str) -> bool:
    exe = state.get("execution") or {}
    completed = exe.get("completed_steps") or []
    return step_id in completed


def record_decision(state: Dict[str, Any], key: str, value: Any) -> None:
    state.setdefault("execution", {}).setdefault("decisions", {})[key] = value


def get_decision(state: Dict[str, Any], key: str, default: Any = None) -> Any:
    return ((state.get("execution") or {}).get("decisions") or {}).get(key, default)
