"""
auth/devices.py -- Derive DeviceInfo from a User-Agent header.

Coarse on purpose: the sessions page shows "Chrome on Windows, Desktop" so a
user can recognise their own devices. Order matters in both tables -- Edge and
Opera embed "Chrome", Chrome embeds "Safari", Android embeds "Linux".
"""

from __future__ import annotations

import re

from auth.models import DeviceInfo

_BROWSERS: tuple[tuple[str, re.Pattern], ...] = (
    ("Edge", re.compile(r"Edg(e|A|iOS)?/")),
    ("Opera", re.compile(r"OPR/|Opera")),
    ("Firefox", re.compile(r"Firefox/|FxiOS/")),
    ("Chrome", re.compile(r"Chrome/|CriOS/")),
    ("Safari", re.compile(r"Safari/")),
)

_SYSTEMS: tuple[tuple[str, re.Pattern], ...] = (
    ("Windows", re.compile(r"Windows")),
    ("iOS", re.compile(r"iPhone|iPad|iPod")),
    ("Android", re.compile(r"Android")),
    ("macOS", re.compile(r"Mac OS X|Macintosh")),
    ("Linux", re.compile(r"Linux")),
)

_TABLET = re.compile(r"iPad|Tablet|Android(?!.*Mobile)")
_MOBILE = re.compile(r"Mobile|iPhone|iPod|Android")


def parse_user_agent(user_agent: str | None, ip_address: str | None = None) -> DeviceInfo:
    """Return browser, OS and device class for a User-Agent string.

    Unknown or missing agents yield "Unknown"/"Desktop" rather than failing;
    device metadata is informational and must never block a login.
    """
    ua = user_agent or ""
    browser = next((name for name, pattern in _BROWSERS if pattern.search(ua)), "Unknown")
    system = next((name for name, pattern in _SYSTEMS if pattern.search(ua)), "Unknown")
    if _TABLET.search(ua):
        device = "Tablet"
    elif _MOBILE.search(ua):
        device = "Mobile"
    else:
        device = "Desktop"
    return DeviceInfo(browser=browser, os=system, device=device, ip_address=ip_address or "unknown")
