"""API route modules."""

from captcha_relay.api.routes import system, tasks

__all__ = ["system", "tasks"]
