"""Business logic and background services."""

from .gemini_client import GeminiClient, InferenceResult, get_gemini_client, reset_gemini_client
from .result_store import RedisResultStore, ResultStore
from .task_lifecycle import TaskLifecycleManager, TaskStatus

__all__ = [
    "GeminiClient",
    "InferenceResult",
    "RedisResultStore",
    "ResultStore",
    "TaskLifecycleManager",
    "TaskStatus",
    "get_gemini_client",
    "reset_gemini_client",
]
