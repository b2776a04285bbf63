"""Task lifecycle for submitted captcha images.

A task is written at most twice, always under the same key:

    create_task()    -> {"status": "pending"}                       (TTL starts)
    complete_task()  -> {"status": "completed", "solution": "..."}  (TTL reset)
                     or {"status": "error", "message": "..."}       (TTL reset)

``create_task`` runs inside the submit request and finishes its store write
before the task id is handed back, so an immediate poll sees ``pending``.
``complete_task`` runs after the response has been sent and must always end
in a terminal write; nothing raised inside it has a caller to report to.
Reads never touch the entry. Entries are never deleted, they expire.
"""

from __future__ import annotations

import uuid
from enum import StrEnum
from typing import Any, Protocol

from captcha_relay.core.exceptions import TaskNotFoundError
from captcha_relay.core.logging import get_logger, sanitize_error
from captcha_relay.core.metrics import record_task_created, record_task_terminal
from captcha_relay.services.gemini_client import InferenceResult
from captcha_relay.services.result_store import ResultStore

logger = get_logger(__name__)

DEFAULT_TASK_TTL_SECONDS = 300


class TaskStatus(StrEnum):
    """Task states. ``pending`` is initial, the other two are terminal."""

    PENDING = "pending"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not TaskStatus.PENDING


class InferenceClient(Protocol):
    async def solve(self, image_b64: str, mime_type: str) -> InferenceResult: ...


def pending_state() -> dict[str, Any]:
    return {"status": TaskStatus.PENDING.value}


def completed_state(solution: str) -> dict[str, Any]:
    return {"status": TaskStatus.COMPLETED.value, "solution": solution}


def error_state(message: str) -> dict[str, Any]:
    return {"status": TaskStatus.ERROR.value, "message": message}


def new_task_id() -> str:
    """Generate an unguessable task identifier (random UUID4)."""
    return str(uuid.uuid4())


class TaskLifecycleManager:
    """Creates tasks, resolves them in the background, and serves reads."""

    def __init__(
        self,
        store: ResultStore,
        inference_client: InferenceClient,
        ttl_seconds: int = DEFAULT_TASK_TTL_SECONDS,
    ) -> None:
        self._store = store
        self._inference = inference_client
        self._ttl_seconds = ttl_seconds

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    async def create_task(self, image_b64: str, mime_type: str) -> str:
        """Register a new pending task and return its id.

        The pending write completes before this returns. A store failure
        propagates (``ResultStoreError``) and no id is issued.

        Args:
            image_b64: Base64-encoded image, needed later by ``complete_task``
            mime_type: Declared media type of the image

        Returns:
            The new task id
        """
        task_id = new_task_id()
        await self._store.put(task_id, pending_state(), self._ttl_seconds)
        record_task_created()
        logger.info(
            f"Task {task_id} created",
            extra={"task_id": task_id, "mime_type": mime_type, "image_chars": len(image_b64)},
        )
        return task_id

    async def complete_task(self, task_id: str, image_b64: str, mime_type: str) -> dict[str, Any]:
        """Run inference for ``task_id`` and write its terminal state.

        Never raises. Provider failures and unexpected errors both end as an
        ``error`` state; if the terminal write itself fails the entry keeps
        its pending value until it expires.

        Returns:
            The terminal state that was written (or attempted)
        """
        try:
            result = await self._inference.solve(image_b64, mime_type)
            if result.ok and result.solution:
                state = completed_state(result.solution)
            else:
                state = error_state(result.error or "Inference returned no solution")
        except Exception as e:
            logger.error(
                f"Unexpected error while solving task {task_id}: {sanitize_error(e)}",
                extra={"task_id": task_id},
                exc_info=True,
            )
            state = error_state(f"Internal error: {sanitize_error(e)}")

        try:
            await self._store.put(task_id, state, self._ttl_seconds)
        except Exception as e:
            logger.error(
                f"Failed to store terminal state for task {task_id}: {sanitize_error(e)}",
                extra={"task_id": task_id},
                exc_info=True,
            )
            return state

        record_task_terminal(state["status"])
        if state["status"] == TaskStatus.COMPLETED:
            logger.info(f"Task {task_id} completed", extra={"task_id": task_id})
        else:
            logger.warning(
                f"Task {task_id} failed: {state['message']}",
                extra={"task_id": task_id},
            )
        return state

    async def get_task(self, task_id: str) -> dict[str, Any]:
        """Return the stored state of ``task_id`` as written.

        Raises:
            TaskNotFoundError: If the id was never issued or has expired
        """
        state = await self._store.get(task_id)
        if state is None:
            raise TaskNotFoundError(task_id)
        return state
