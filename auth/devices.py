"""
auth/devices.py -- User-agent device classification.

A deliberately small heuristic: the tablet pattern is checked before the
mobile pattern because iPad user agents match both.
"""

from __future__ import annotations

import re

MOBILE = "Mobile"
TABLET = "Tablet"
DESKTOP = "Desktop"

DEVICE_TYPES = (MOBILE, TABLET, DESKTOP)

_MOBILE_RE = re.compile(r"Mobile|Android|iP(hone|od|ad)|BlackBerry|IEMobile|Opera Mini", re.IGNORECASE)
_TABLET_RE = re.compile(r"iPad|Tablet|Kindle|PlayBook|Nexus", re.IGNORECASE)


def classify_user_agent(user_agent: str | None) -> str:
    """Map a raw User-Agent header to one of DEVICE_TYPES. Empty or missing -> Desktop."""
    ua = user_agent or ""
    if _TABLET_RE.search(ua):
        return TABLET
    if _MOBILE_RE.search(ua):
        return MOBILE
    return DESKTOP
