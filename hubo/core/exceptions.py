"""
Service-layer exceptions.

Every error a service wants to surface to an API client derives from
HuboError and carries its machine-readable ``code`` (see
hubo.utils.errors.E) plus optional structured ``details``.  Blueprints call
``register_error_handlers(bp)`` once and every subclass maps onto the same
JSON error body; the HTTP status follows from the code.

    HuboError
    ├── NotFoundError          ERR_NOT_FOUND            404
    └── ValidationError        ERR_BUSINESS_RULE        422
        └── UnrecognizedStageError (services.backlog_progression)

hubo.ai.task_generator.TaskGenerationError (ERR_UPSTREAM, 502) also derives
from HuboError.
"""

from hubo.utils.errors import E


class HuboError(Exception):
    code = E.BUSINESS_RULE

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class NotFoundError(HuboError):
    """A project, task or activity id that does not exist.

    Args:
        resource: "Project", "Task" or "TaskActivity".
        resource_id: The id that was looked up.
    """

    code = E.NOT_FOUND

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        suffix = f" id={resource_id}" if resource_id is not None else ""
        super().__init__(f"{resource}{suffix} not found")


class ValidationError(HuboError):
    """Well-formed input that breaks a rule (missing title, unknown status,
    writing ``backlog`` directly, advancing past the final stage...)."""

    code = E.BUSINESS_RULE
