"""Maintenance announcement texts for the operator to paste."""

from __future__ import annotations

from datetime import datetime, timedelta

from mup.core.config import InstanceConfig

MAINTENANCE_MESSAGE = (
    "We'll be performing Mastodon software upgrades soon. May cause some visible "
    "notifications or even a minor downtime. Sorry for the inconvenience, and thank "
    "you for your patience."
)

_WINDOW_FORMAT = "%m/%d/%Y %I:%M %p"


def maintenance_window(now: datetime, hours: float = 2.0) -> tuple[str, str]:
    start = now.strftime(_WINDOW_FORMAT)
    end = (now + timedelta(hours=hours)).strftime(_WINDOW_FORMAT)
    zone = now.strftime("%Z")
    if zone:
        return f"{start} {zone}", f"{end} {zone}"
    return start, end


def render_announcements(config: InstanceConfig, now: datetime) -> list[str]:
    start, end = maintenance_window(now)
    return [
        "1. Create Mastodon announcement:",
        f"   URL: {config.instance_url}/admin/announcements/new",
        "   Message:",
        f"{MAINTENANCE_MESSAGE} Status: {config.status_url}",
        "",
        "2. Create maintenance window:",
        f"   URL: {config.maintenance_url}",
        "   Title: Server maintenance",
        f"   From: {start}",
        f"   To: {end}",
        "   Message:",
        MAINTENANCE_MESSAGE,
    ]
