from __future__ import annotations

from datetime import datetime

from mup.core.config import InstanceConfig
from mup.services.announcements import (
    MAINTENANCE_MESSAGE,
    maintenance_window,
    render_announcements,
)

_NOW = datetime(2025, 8, 25, 9, 5)


class TestAnnouncements:
    def test_window_spans_two_hours(self) -> None:
        start, end = maintenance_window(_NOW)

        assert start == "08/25/2025 09:05 AM"
        assert end == "08/25/2025 11:05 AM"

    def test_render_uses_instance_urls(self) -> None:
        config = InstanceConfig(
            instance_url="https://social.example",
            status_url="https://status.social.example",
        )

        lines = render_announcements(config, _NOW)

        assert "   URL: https://social.example/admin/announcements/new" in lines
        assert f"{MAINTENANCE_MESSAGE} Status: https://status.social.example" in lines
