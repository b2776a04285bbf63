"""API routes for captcha task submission and result polling.

POST /submit stores a pending task and returns its id straight away; the
inference call runs as a background task after the response is sent.
GET /result reads whatever state the store currently holds for the id.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from pydantic import ValidationError

from captcha_relay.api.dependencies import get_submit_payload, get_task_manager, verify_query_key
from captcha_relay.api.schemas.tasks import SubmitRequest, SubmitResponse, TaskResultResponse
from captcha_relay.core.exceptions import InvalidInputError, TaskNotFoundError
from captcha_relay.core.logging import get_logger
from captcha_relay.services.task_lifecycle import TaskLifecycleManager

logger = get_logger(__name__)

router = APIRouter(tags=["tasks"])


@router.post(
    "/submit",
    response_model=SubmitResponse,
    summary="Submit a captcha image",
    description=(
        "Create a recognition task for a base64 image. Returns a task id "
        "immediately; poll GET /result for the outcome."
    ),
    responses={
        400: {"description": "Malformed body or missing image/mimeType"},
        401: {"description": "Invalid or missing AUTH_TOKEN bearer credential"},
        500: {"description": "Service is missing a required setting"},
        503: {"description": "Result store unavailable, no task was created"},
    },
)
async def submit_task(
    background_tasks: BackgroundTasks,
    manager: TaskLifecycleManager = Depends(get_task_manager),
    payload: SubmitRequest = Depends(get_submit_payload),
) -> SubmitResponse:
    """Create a pending task and schedule its inference in the background.

    Args:
        background_tasks: FastAPI background tasks, run after the response
        manager: Task lifecycle manager
        payload: Validated submit body

    Returns:
        The new task id
    """
    task_id = await manager.create_task(payload.image, payload.mime_type)

    background_tasks.add_task(
        manager.complete_task,
        task_id,
        payload.image,
        payload.mime_type,
    )

    return SubmitResponse(taskId=task_id)


@router.get(
    "/result",
    response_model=TaskResultResponse,
    response_model_exclude_none=True,
    summary="Poll a task result",
    description="Return the current state of a task: pending, completed or error.",
    responses={
        400: {"description": "Missing taskId query parameter"},
        401: {"description": "Invalid or missing apiKey query parameter"},
        404: {"description": "Task not found or expired"},
        500: {"description": "Service is missing a required setting"},
    },
)
async def get_task_result(
    task_id: str | None = Query(None, alias="taskId", description="Id returned by /submit"),
    manager: TaskLifecycleManager = Depends(get_task_manager),
    _: None = Depends(verify_query_key),
) -> TaskResultResponse:
    """Look up a task without modifying it.

    Args:
        task_id: Task id from the submit response
        manager: Task lifecycle manager

    Returns:
        The stored task state

    Raises:
        InvalidInputError: If taskId is missing
        TaskNotFoundError: If the task is unknown, expired or unreadable
    """
    if not task_id:
        raise InvalidInputError('Missing "taskId" query parameter', field="taskId")

    state = await manager.get_task(task_id)
    try:
        return TaskResultResponse.model_validate(state)
    except ValidationError as e:
        # Something other than a task state lives under this key
        logger.warning(f"Unreadable state stored for task {task_id}, treating as not found")
        raise TaskNotFoundError(task_id) from e
