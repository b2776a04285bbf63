"""API request/response schemas."""

from captcha_relay.api.schemas.tasks import SubmitRequest, SubmitResponse, TaskResultResponse

__all__ = ["SubmitRequest", "SubmitResponse", "TaskResultResponse"]
