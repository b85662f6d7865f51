"""stackctl — docker compose project launcher and command dispatcher."""

__version__ = "0.1.0"
