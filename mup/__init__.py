"""Interactive upgrade pilot for self-hosted Mastodon instances."""

__version__ = "0.3.0"
