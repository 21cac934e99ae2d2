from __future__ import annotations

import logging
from typing import Dict

from ..errors import MissingCommandError, PreconditionError

logger = logging.getLogger(__name__)

OS_RELEASE_PATH = "/etc/os-release"
SUPPORTED_OS_ID = "debian"
SUPPORTED_OS_VERSION = "13"
SUPPORTED_PYTHON = "3.13"

_PY_VERSION_SNIPPET = "import sys; print(f'{sys.version_info.major}.{sys.version_info.minor}')"


def parse_os_release(text: str) -> Dict[str, str]:
    info: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        info[key.strip()] = value.strip().strip('"').strip("'")
    return info


def require_commands(target, names) -> None:
    for name in names:
        if not target.has_command(name):
            raise MissingCommandError(name)


def verify_debian13(target) -> Dict[str, str]:
    text = target.read_file(OS_RELEASE_PATH)
    if text is None:
        raise PreconditionError(f"Cannot read {OS_RELEASE_PATH}; this installer requires Debian 13 (Trixie).")
    info = parse_os_release(text)
    if info.get("ID") != SUPPORTED_OS_ID or info.get("VERSION_ID") != SUPPORTED_OS_VERSION:
        found = f"{info.get('ID', '?')} {info.get('VERSION_ID', '?')}"
        raise PreconditionError(f"Wrong OS detected ({found}). This installer requires Debian 13 (Trixie).")
    return info


def python_version(target) -> str:
    return target.run(["python3", "-c", _PY_VERSION_SNIPPET]).stdout.strip()


def verify_python313(target) -> str:
    py_mm = python_version(target)
    if py_mm != SUPPORTED_PYTHON:
        raise PreconditionError(f"python3 is {py_mm}, expected {SUPPORTED_PYTHON} (Debian 13).")
    return py_mm
