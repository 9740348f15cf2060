"""Exception taxonomy shared by the ledger, AI invoker, and task executors."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from resume_forge.ai.failure_classifier import ProviderFailureClassification

STRUCTURING_FAILURE_MESSAGE = "The AI returned an unreadable response. Please try again."


class ResumeForgeError(RuntimeError):
    """Base class for domain errors."""


class AccountNotFoundError(ResumeForgeError):
    def __init__(self, user_id: str) -> None:
        super().__init__(f"User account not found: {user_id}")
        self.user_id = user_id


class InsufficientBalanceError(ResumeForgeError):
    """Admission rejected: the balance does not cover the activity cost."""

    def __init__(self, *, balance: int, required: int) -> None:
        super().__init__(f"Insufficient tokens. Balance: {balance}, Required: {required}")
        self.balance = balance
        self.required = required


class ProviderFailure(ResumeForgeError):
    """Every configured AI provider failed for one call."""

    def __init__(
        self,
        message: str,
        *,
        classification: ProviderFailureClassification | None = None,
    ) -> None:
        super().__init__(message)
        self.classification = classification


class StructuringFailure(ResumeForgeError):
    """A provider answered, but the content could not be parsed as expected."""

    def __init__(self, detail: str, *, raw_preview: str = "") -> None:
        super().__init__(detail)
        self.detail = detail
        self.raw_preview = raw_preview

    @property
    def user_message(self) -> str:
        return STRUCTURING_FAILURE_MESSAGE


class StaleTimeout(ResumeForgeError):
    """A task sat in an active state longer than the staleness window."""

    reason = "stale timeout"

    def __init__(self) -> None:
        super().__init__(self.reason)


class CancelledByUser(ResumeForgeError):
    """Cooperative abort observed at a checkpoint; never alerted on."""

    def __init__(self, message: str = "Task was cancelled by user") -> None:
        super().__init__(message)


class StageFailure(ResumeForgeError):
    """A pipeline stage failed; the message names the stage."""

    def __init__(self, stage: str, error: BaseException) -> None:
        super().__init__(f"{stage} failed: {describe_failure(error)}")
        self.stage = stage


class TaskGone(ResumeForgeError):
    """A guarded write found the record deleted, terminal, or owned by someone else."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task {task_id} no longer exists")
        self.task_id = task_id


def describe_failure(error: BaseException) -> str:
    """Human-readable failure text stored on failed tasks and jobs."""

    if isinstance(error, StructuringFailure):
        return error.user_message
    message = str(error).strip()
    return message or type(error).__name__
