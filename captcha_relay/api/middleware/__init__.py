"""API middleware components."""

from captcha_relay.api.middleware.request_id import RequestIDMiddleware

__all__ = ["RequestIDMiddleware"]
