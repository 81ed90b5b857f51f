"""Switchboard — self-hosted chat client backend with a streaming completion relay."""

__version__ = "0.1.0"
