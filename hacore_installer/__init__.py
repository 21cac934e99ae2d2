"""Home Assistant Core installer for Proxmox VE (Python-first, step-driven).

Core design goals:
- Host mode: create a Debian 13 LXC, then install inside it
- In-container mode: venv + systemd service on Debian 13
- Idempotent steps
- Fail fast on the first failed command
- Centralized logging
"""

__all__ = []
