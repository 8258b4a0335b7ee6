"""
Backlog Progression Engine

Moves a project through its ordered backlog stages:

    business_innovation → engineering → outcomes_adoption → completed

A project may leave a stage only when it has at least one task tagged with
that stage and every such task is ``done``.

Transitions:
  - business_innovation / engineering: ``backlog`` moves to the next stage,
    then the task generator is asked for the new stage's tasks, which are
    inserted as ``in_progress``. Generation is best-effort: a generator
    failure never undoes the stage move; it is reported via
    ``AdvanceResult.tasks_generated = False``.
  - outcomes_adoption: ``status`` becomes ``completed``; ``backlog`` stays at
    ``outcomes_adoption`` so the last stage's tasks remain filterable.

The stage write is a compare-and-swap on ``backlog``; when two callers race,
one advances and the other gets a not-eligible result without generating.

Usage:
    from hubo.services.backlog_progression import BacklogProgressionEngine

    engine = BacklogProgressionEngine(project_store, task_store, generator)
    if engine.evaluate_progression(project_id).eligible:
        result = engine.advance_project(project_id)
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field

from hubo.ai.task_generator import (
    GenerationRequest,
    TaskGenerationError,
    TaskGenerator,
    validate_generated_tasks,
)
from hubo.core.exceptions import NotFoundError, ValidationError
from hubo.models.project import COMPLETED, STAGE_LABELS
from hubo.models.task import DONE
from hubo.services.stores import ProjectState, ProjectStore, TaskStore
from hubo.utils.errors import E

logger = logging.getLogger(__name__)

NEXT_STAGE = {
    "business_innovation": "engineering",
    "engineering": "outcomes_adoption",
    "outcomes_adoption": COMPLETED,
}

GENERATED_TASK_STATUS = "in_progress"
SEEDED_TASK_STATUS = "unassigned"

# Not-eligible reasons
REASON_ELIGIBLE = "eligible"
REASON_NO_STAGE = "no_stage"
REASON_COMPLETED = "completed"
REASON_UNRECOGNIZED = "unrecognized_stage"
REASON_NO_TASKS = "no_tasks"
REASON_TASKS_PENDING = "tasks_pending"
REASON_ALREADY_ADVANCED = "already_advanced"


class UnrecognizedStageError(ValidationError):
    """Raised when a project's backlog holds a value outside the stage sequence."""

    code = E.UNRECOGNIZED_STAGE

    def __init__(self, project_id: str, stage: str):
        super().__init__(
            f"Project {project_id} has unrecognized backlog stage {stage!r}",
            details={"backlog": stage, "expected": list(NEXT_STAGE)},
        )
        self.project_id = project_id
        self.stage = stage


@dataclass
class EligibilityResult:
    project_id: str
    eligible: bool
    reason: str
    current_stage: str | None
    next_stage: str | None = None
    total_tasks: int = 0
    done_tasks: int = 0

    @property
    def next_stage_label(self) -> str | None:
        return STAGE_LABELS.get(self.next_stage) if self.next_stage else None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["next_stage_label"] = self.next_stage_label
        return data


@dataclass
class AdvanceResult:
    project_id: str
    success: bool
    reason: str
    previous_stage: str | None
    result_stage: str | None = None
    generation_attempted: bool = False
    tasks_generated: bool = False
    generated_task_ids: list[str] = field(default_factory=list)
    generation_error: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


class BacklogProgressionEngine:
    """Evaluates and performs backlog-stage advancement for projects."""

    def __init__(self, project_store: ProjectStore, task_store: TaskStore,
                 task_generator: TaskGenerator | None = None):
        self.project_store = project_store
        self.task_store = task_store
        self.task_generator = task_generator

    # ── Queries ──────────────────────────────────────────────────────────

    def evaluate_progression(self, project_id: str) -> EligibilityResult:
        """
        Decide whether the project may leave its current stage. Read-only.

        Raises:
            NotFoundError: if the project does not exist.
        """
        return self._evaluate(self._load(project_id))

    def _load(self, project_id: str) -> ProjectState:
        project = self.project_store.get_project(project_id)
        if project is None:
            raise NotFoundError(resource="Project", resource_id=project_id)
        return project

    def _evaluate(self, project: ProjectState) -> EligibilityResult:
        stage = project.backlog

        if not stage:
            return EligibilityResult(project.id, False, REASON_NO_STAGE, stage)
        if stage == COMPLETED or project.status == COMPLETED:
            return EligibilityResult(project.id, False, REASON_COMPLETED, stage)
        if stage not in NEXT_STAGE:
            return EligibilityResult(project.id, False, REASON_UNRECOGNIZED, stage)

        tasks = self.task_store.list_tasks(project.id, stage)
        done = sum(1 for t in tasks if t.status == DONE)
        result = EligibilityResult(
            project.id, False, REASON_TASKS_PENDING, stage,
            next_stage=NEXT_STAGE[stage], total_tasks=len(tasks), done_tasks=done,
        )
        if not tasks:
            result.reason = REASON_NO_TASKS
        elif done == len(tasks):
            result.eligible = True
            result.reason = REASON_ELIGIBLE
        return result

    # ── Commands ─────────────────────────────────────────────────────────

    def check_stage_transition(self, project_id: str) -> tuple[ProjectState, EligibilityResult]:
        """
        Load the project, reject corrupt stages and evaluate eligibility.

        Raises:
            NotFoundError, UnrecognizedStageError
        """
        project = self._load(project_id)
        stage = project.backlog
        if stage and stage != COMPLETED and stage not in NEXT_STAGE:
            logger.error("Refusing to advance project %s: unrecognized backlog %r",
                         project_id, stage, extra={"project_id": project_id, "stage": stage})
            raise UnrecognizedStageError(project_id, stage)
        return project, self._evaluate(project)

    def claim_next_stage(self, project: ProjectState) -> tuple[str, bool]:
        """
        Write the stage transition for an eligible project.

        Returns:
            (next_stage, won). ``won`` is False when another writer moved
            the project first; nothing was written in that case.
        """
        current = project.backlog
        target = NEXT_STAGE[current]
        if target == COMPLETED:
            changes = {"status": COMPLETED}
        else:
            changes = {"backlog": target}

        won = self.project_store.update_project(project.id, changes, expected_backlog=current)
        if not won:
            logger.warning("Project %s was already advanced from %s by another request",
                           project.id, current, extra={"project_id": project.id, "stage": current})
        return target, won

    def advance_project(self, project_id: str, *, additional_context: str | None = None) -> AdvanceResult:
        """
        Advance the project to its next stage if eligible.

        Returns an unsuccessful AdvanceResult (no writes) when the project is
        not eligible or a concurrent request advanced it first.

        Raises:
            NotFoundError: project does not exist.
            UnrecognizedStageError: backlog holds an unknown value (no writes).
            SQLAlchemyError (or store-specific errors): persistence failures.
        """
        project, eligibility = self.check_stage_transition(project_id)
        current = project.backlog

        if not eligibility.eligible:
            logger.info("Project %s cannot progress from %s: %s",
                        project_id, current, eligibility.reason)
            return AdvanceResult(project_id, False, eligibility.reason, current)

        target, won = self.claim_next_stage(project)
        if not won:
            return AdvanceResult(project_id, False, REASON_ALREADY_ADVANCED, current)

        result = AdvanceResult(project_id, True, REASON_ELIGIBLE, current, result_stage=target)
        logger.info("Project %s advanced %s → %s", project_id, current, target,
                    extra={"project_id": project_id, "stage": target})

        if target == COMPLETED:
            return result

        self._generate_tasks(result, additional_context)
        return result

    def advance_with_tasks(self, project_id: str, tasks: list) -> AdvanceResult:
        """
        Advance the project and seed the new stage with caller-reviewed tasks.

        The generator is not called; ``tasks`` uses the generator response
        schema. Not allowed for the outcomes_adoption → completed step.

        Raises:
            NotFoundError, UnrecognizedStageError
            ValidationError: empty or malformed task list, or terminal step.
        """
        try:
            cleaned = validate_generated_tasks(tasks)
        except TaskGenerationError as exc:
            raise ValidationError(str(exc), details={"tasks": "invalid"}) from exc
        if not cleaned:
            raise ValidationError("At least one task is required", details={"tasks": "required"})

        project, eligibility = self.check_stage_transition(project_id)
        current = project.backlog
        if not eligibility.eligible:
            return AdvanceResult(project_id, False, eligibility.reason, current)
        if eligibility.next_stage == COMPLETED:
            raise ValidationError(
                "The final stage completes the project; no tasks can be added",
                details={"backlog": current},
            )

        target, won = self.claim_next_stage(project)
        if not won:
            return AdvanceResult(project_id, False, REASON_ALREADY_ADVANCED, current)

        logger.info("Project %s advanced %s → %s with %d reviewed tasks",
                    project_id, current, target, len(cleaned),
                    extra={"project_id": project_id, "stage": target})
        task_ids = self.task_store.insert_tasks(build_task_rows(project_id, target, cleaned))
        return AdvanceResult(
            project_id, True, REASON_ELIGIBLE, current, result_stage=target,
            tasks_generated=True, generated_task_ids=task_ids,
        )

    def preview_tasks(self, project_id: str, *, additional_context: str | None = None) -> list[dict]:
        """
        Ask the generator for the next stage's tasks without writing anything.

        Raises:
            NotFoundError, UnrecognizedStageError
            ValidationError: project is completed, has no stage, or is at the final stage.
            TaskGenerationError: generator disabled or failed.
        """
        project, eligibility = self.check_stage_transition(project_id)
        if eligibility.reason in (REASON_NO_STAGE, REASON_COMPLETED):
            raise ValidationError("Project has no next backlog stage", details={"reason": eligibility.reason})
        if eligibility.next_stage == COMPLETED:
            raise ValidationError(
                "The final stage completes the project; no tasks are generated",
                details={"backlog": project.backlog},
            )
        if self.task_generator is None:
            raise TaskGenerationError("Task generation is disabled")

        return self.task_generator.generate(GenerationRequest(
            project_id=project_id,
            previous_stage=project.backlog,
            next_stage=eligibility.next_stage,
            additional_context=additional_context,
        ))

    def generate_stage_tasks(self, project_id: str, *, additional_context: str | None = None,
                             insert: bool = True) -> tuple[list[dict], list[str]]:
        """
        Generate tasks for the stage the project is in now, without moving it.

        With ``insert`` the tasks are stored as ``unassigned`` in the current
        stage; otherwise they are only returned for review.

        Returns:
            (tasks, inserted task ids). Ids are empty when not inserting.

        Raises:
            NotFoundError, UnrecognizedStageError
            ValidationError: project is completed or has no stage.
            TaskGenerationError: generator disabled or failed.
        """
        project, eligibility = self.check_stage_transition(project_id)
        if eligibility.reason in (REASON_NO_STAGE, REASON_COMPLETED):
            raise ValidationError("Project has no active backlog stage",
                                  details={"reason": eligibility.reason})
        if self.task_generator is None:
            raise TaskGenerationError("Task generation is disabled")

        stage = project.backlog
        tasks = self.task_generator.generate(GenerationRequest(
            project_id=project_id,
            previous_stage=None,
            next_stage=stage,
            additional_context=additional_context,
        ))
        if not insert:
            return tasks, []

        task_ids = self.task_store.insert_tasks(
            build_task_rows(project_id, stage, tasks, status=SEEDED_TASK_STATUS)
        )
        logger.info("Generated %d tasks for project %s in %s", len(task_ids), project_id, stage,
                    extra={"project_id": project_id, "stage": stage})
        return tasks, task_ids

    def _generate_tasks(self, result: AdvanceResult, additional_context: str | None) -> None:
        """Best-effort task generation for the stage just entered."""
        if self.task_generator is None:
            result.generation_error = "Task generation is disabled"
            return

        result.generation_attempted = True
        request = GenerationRequest(
            project_id=result.project_id,
            previous_stage=result.previous_stage,
            next_stage=result.result_stage,
            additional_context=additional_context,
        )
        try:
            proposed = self.task_generator.generate(request)
        except TaskGenerationError as exc:
            result.generation_error = str(exc)
            logger.warning("Task generation failed for project %s (%s); stage move kept: %s",
                           result.project_id, result.result_stage, exc,
                           extra={"project_id": result.project_id, "stage": result.result_stage})
            return

        result.generated_task_ids = self.task_store.insert_tasks(
            build_task_rows(result.project_id, result.result_stage, proposed)
        )
        result.tasks_generated = True


def build_task_rows(project_id: str, stage: str, tasks: list[dict],
                    status: str = GENERATED_TASK_STATUS) -> list[dict]:
    """Tag proposed tasks with project, stage and status (pre-started by default)."""
    return [
        {
            "project_id": project_id,
            "title": t["title"],
            "description": t.get("description"),
            "accountable_role": t.get("accountable_role"),
            "responsible_role": t.get("responsible_role"),
            "activities": list(t.get("activities") or []),
            "backlog": stage,
            "status": status,
        }
        for t in tasks
    ]
