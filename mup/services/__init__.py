"""Services for the Mastodon upgrade pilot.

Each module wraps one external collaborator of an upgrade (git hosting,
systemd, the Rails toolchain, tootctl, the instance API) behind a small
protocol; ``mup.services.upgrade`` sequences them into workflows.
"""
