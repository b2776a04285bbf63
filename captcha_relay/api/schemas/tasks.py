"""Pydantic schemas for the submit/result task endpoints.

Field names on the wire are camelCase (``mimeType``, ``taskId``) to match
existing clients; Python attributes are snake_case.
"""

import base64
import binascii

from pydantic import BaseModel, ConfigDict, Field, field_validator

from captcha_relay.services.task_lifecycle import TaskStatus

# type/subtype, e.g. image/png, image/svg+xml
MIME_TYPE_PATTERN = r"^[A-Za-z0-9][\w.+-]*/[A-Za-z0-9][\w.+-]*$"


class SubmitRequest(BaseModel):
    """Body of POST /submit.

    The media type is required and is passed to the provider unchanged;
    whether it matches the actual image bytes is not checked here.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "image": "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg==",
                "mimeType": "image/png",
            }
        },
    )

    image: str = Field(
        ...,
        min_length=1,
        description="Base64-encoded image bytes",
    )
    mime_type: str = Field(
        ...,
        alias="mimeType",
        min_length=3,
        max_length=127,
        pattern=MIME_TYPE_PATTERN,
        description="Media type of the image (e.g. image/png)",
    )

    @field_validator("image")
    @classmethod
    def validate_base64(cls, v: str) -> str:
        """Reject payloads that are not valid base64 text.

        Line breaks and other whitespace (MIME-style wrapping) are removed
        first; the compact form is what gets forwarded.
        """
        compact = "".join(v.split())
        if not compact:
            raise ValueError("image must not be empty")
        try:
            base64.b64decode(compact, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError("image must be valid base64") from e
        return compact


class SubmitResponse(BaseModel):
    """Response of POST /submit."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={"example": {"taskId": "3f2c8f0e-6a43-4a0e-9d1b-7f0c2b8e5a91"}},
    )

    task_id: str = Field(..., alias="taskId", description="Identifier to poll with GET /result")


class TaskResultResponse(BaseModel):
    """Response of GET /result: the stored task state.

    ``solution`` is present only when completed, ``message`` only on error.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"status": "pending"},
                {"status": "completed", "solution": "42"},
                {"status": "error", "message": "Gemini API error: ..."},
            ]
        },
    )

    status: TaskStatus = Field(..., description="pending, completed or error")
    solution: str | None = Field(None, description="Answer extracted by the model")
    message: str | None = Field(None, description="Failure detail")
