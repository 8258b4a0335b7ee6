"""
Hubo
Backlog Task Generator.

Proposes the task batch for a project's next backlog stage, or seeds the
current stage when no previous stage is given.

Pipeline (LLMTaskGenerator):
    1. Load project details and the previous (or, when seeding, current) stage's tasks
    2. Render the backlog_task_generator or stage_task_generator prompt
    3. Call the LLM gateway once (no retry, bounded timeout)
    4. Parse the JSON reply and validate it against the task schema

HttpTaskGenerator posts the same request to a remote generation service
instead. Both raise TaskGenerationError on any failure; the response is
treated as untrusted until validate_generated_tasks() accepts it.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass

import requests

from hubo.ai.gateway import LLMError
from hubo.core.exceptions import HuboError
from hubo.models import db
from hubo.models.project import STAGE_LABELS, Project
from hubo.models.task import Task
from hubo.utils.errors import E

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30  # seconds

# optional string fields -> max stored length (None = unbounded Text column)
_TASK_STRING_FIELDS = {"description": None, "accountable_role": 100, "responsible_role": 100}
TITLE_MAX = 300

# Role guidance injected into the prompt for the stage being generated
STAGE_DESCRIPTIONS = {
    "business_innovation": (
        "Business Innovation - Focus on diagnosing the current situation, redesigning the "
        "process with AI, and identifying leap-of-faith assumptions\n\n"
        "Business Innovation Team Roles:\n"
        "- Business Analyst: Diagnose Current Situation - Map the as-is process, pain points "
        "and baseline metrics.\n"
        "- AI Process Reengineer: Redesign with AI - Define the to-be process and where AI "
        "changes the work.\n"
        "- AI Innovation Executive: Identify Leap of Faith Assumptions - Name the riskiest "
        "assumptions and how to test them."
    ),
    "engineering": (
        "Engineering & Development - Focus on technical implementation, architecture, "
        "and development tasks\n\n"
        "Engineering Team Roles:\n"
        "- AI System Architect: Translate to Technical Specifications - Convert business "
        "requirements into detailed, build-ready documentation.\n"
        "- AI System Engineer: Build Enterprise-Scale Solutions - Implement the required "
        "systems, integrating AI components.\n"
        "- AI Data Engineer: Analytics and Continuous Delivery - Establish analytics "
        "platforms, monitor results, and support CI/CD."
    ),
    "outcomes_adoption": (
        "Outcomes & Adoption - Focus on launch, user adoption, measuring outcomes, and iteration\n\n"
        "Outcomes Team Roles:\n"
        "- Outcomes Analytics Executive: Define and track success metrics.\n"
        "- Education Implementation Executive: Train users and drive adoption.\n"
        "- Change Leadership Architect: Lead organisational change and communications."
    ),
}


class TaskGenerationError(HuboError):
    """Raised when the generator cannot produce a valid task batch."""

    code = E.UPSTREAM


@dataclass(frozen=True)
class GenerationRequest:
    project_id: str
    previous_stage: str | None  # None: seed tasks for next_stage, the current stage
    next_stage: str
    additional_context: str | None = None

    def to_payload(self) -> dict:
        """Wire format used by the remote generation service."""
        payload = {
            "projectId": self.project_id,
            "previousStage": self.previous_stage,
            "nextStage": self.next_stage,
        }
        if self.additional_context:
            payload["additionalContext"] = self.additional_context
        return payload


def validate_generated_tasks(payload) -> list[dict]:
    """
    Validate a generator response and normalise it to a list of task dicts.

    Accepts ``{"tasks": [...]}`` or a bare list. Each task must have a
    non-empty string ``title``; description and role fields must be strings
    when present; ``activities`` must be a list of non-empty strings.
    Titles, activities and role names are cut to their column lengths.
    One bad task rejects the whole batch.

    Raises:
        TaskGenerationError: on any schema violation.
    """
    if isinstance(payload, dict):
        tasks = payload.get("tasks")
    else:
        tasks = payload
    if not isinstance(tasks, list):
        raise TaskGenerationError("Generator response has no 'tasks' list")

    cleaned = []
    for idx, item in enumerate(tasks):
        if not isinstance(item, dict):
            raise TaskGenerationError(f"tasks[{idx}] is not an object")

        title = item.get("title")
        if not isinstance(title, str) or not title.strip():
            raise TaskGenerationError(f"tasks[{idx}].title must be a non-empty string")

        task = {"title": title.strip()[:TITLE_MAX]}
        for field, max_len in _TASK_STRING_FIELDS.items():
            value = item.get(field)
            if value is not None and not isinstance(value, str):
                raise TaskGenerationError(f"tasks[{idx}].{field} must be a string")
            value = value.strip() if value else None
            task[field] = value[:max_len] if value and max_len else value

        activities = item.get("activities") or []
        if not isinstance(activities, list):
            raise TaskGenerationError(f"tasks[{idx}].activities must be a list")
        for a_idx, activity in enumerate(activities):
            if not isinstance(activity, str) or not activity.strip():
                raise TaskGenerationError(
                    f"tasks[{idx}].activities[{a_idx}] must be a non-empty string"
                )
        task["activities"] = [a.strip()[:TITLE_MAX] for a in activities]
        cleaned.append(task)

    return cleaned


# ── Generator interface ──────────────────────────────────────────────────────

class TaskGenerator(ABC):
    """Proposes tasks for a backlog stage."""

    @abstractmethod
    def generate(self, request: GenerationRequest) -> list[dict]:
        """
        Returns:
            Validated task dicts (title, description, accountable_role,
            responsible_role, activities).

        Raises:
            TaskGenerationError
        """


class HttpTaskGenerator(TaskGenerator):
    """Remote generation service reached over HTTP."""

    def __init__(self, url: str, *, api_key: str | None = None, timeout: float = DEFAULT_TIMEOUT):
        if not url:
            raise ValueError("HttpTaskGenerator requires a service URL")
        self.url = url
        self.api_key = api_key
        self.timeout = timeout

    def generate(self, request: GenerationRequest) -> list[dict]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            response = requests.post(
                self.url, json=request.to_payload(), headers=headers, timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise TaskGenerationError(f"Task generator timed out after {self.timeout}s") from exc
        except requests.RequestException as exc:
            raise TaskGenerationError(f"Task generator unreachable: {exc}") from exc

        if not response.ok:
            raise TaskGenerationError(
                f"Task generator returned HTTP {response.status_code}: {response.text[:200]}"
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise TaskGenerationError("Task generator returned invalid JSON") from exc

        return validate_generated_tasks(body)


class LLMTaskGenerator(TaskGenerator):
    """In-process generator backed by the LLM gateway."""

    PROMPT_NAME = "backlog_task_generator"
    SEED_PROMPT_NAME = "stage_task_generator"

    def __init__(self, gateway, prompt_registry, *, model: str | None = None,
                 timeout: float = DEFAULT_TIMEOUT):
        self.gateway = gateway
        self.prompt_registry = prompt_registry
        self.model = model
        self.timeout = timeout

    def generate(self, request: GenerationRequest) -> list[dict]:
        project = db.session.get(Project, request.project_id)
        if project is None:
            raise TaskGenerationError(f"Project {request.project_id} not found")

        # seeding the current stage lists that stage's tasks so they are not repeated
        prompt_name = self.PROMPT_NAME if request.previous_stage else self.SEED_PROMPT_NAME
        work_stage = request.previous_stage or request.next_stage
        work = [
            {"title": t.title, "description": t.description, "status": t.status}
            for t in Task.query.filter_by(project_id=request.project_id, backlog=work_stage)
        ]

        try:
            messages = self.prompt_registry.render(
                prompt_name,
                project_title=project.title,
                project_description=project.description or "",
                project_brief=project.project_brief or "",
                desired_outcomes=project.desired_outcomes or "",
                previous_stage_label=STAGE_LABELS.get(request.previous_stage, request.previous_stage),
                next_stage_label=STAGE_LABELS.get(request.next_stage, request.next_stage),
                previous_work=json.dumps(work, indent=2),
                existing_work=json.dumps(work, indent=2),
                additional_context=request.additional_context or "",
                stage_description=STAGE_DESCRIPTIONS.get(request.next_stage, request.next_stage),
            )
        except KeyError as exc:
            raise TaskGenerationError(f"{prompt_name} prompt template not found") from exc

        try:
            llm_response = self.gateway.chat(
                messages,
                self.model,
                purpose=prompt_name,
                max_retries=1,
                timeout=self.timeout,
                response_mime_type="application/json",
            )
        except LLMError as exc:
            raise TaskGenerationError(f"AI generation failed: {exc}") from exc

        return validate_generated_tasks(self._parse_response(llm_response.get("content", "")))

    @staticmethod
    def _parse_response(content: str):
        """Parse the LLM reply into JSON, tolerating code fences and chatter."""
        cleaned = content.strip()
        if cleaned.startswith("```"):
            cleaned = re.sub(r'^```\w*\n?', '', cleaned)
            cleaned = re.sub(r'\n?```$', '', cleaned)

        try:
            return json.loads(cleaned)
        except json.JSONDecodeError:
            match = re.search(r"\{.*\}", cleaned, re.DOTALL)
            if match:
                try:
                    return json.loads(match.group())
                except json.JSONDecodeError:
                    pass
        raise TaskGenerationError("AI response is not valid JSON")


def build_task_generator(config, gateway_factory, registry_factory) -> TaskGenerator | None:
    """
    Build the generator selected by ``TASK_GENERATOR_BACKEND``.

    Returns None when generation is disabled ("none").
    """
    backend = (config.get("TASK_GENERATOR_BACKEND") or "llm").lower()
    timeout = float(config.get("TASK_GENERATOR_TIMEOUT") or DEFAULT_TIMEOUT)

    if backend == "none":
        return None
    if backend == "http":
        return HttpTaskGenerator(
            config.get("TASK_GENERATOR_URL"),
            api_key=config.get("TASK_GENERATOR_API_KEY"),
            timeout=timeout,
        )
    if backend == "llm":
        return LLMTaskGenerator(
            gateway_factory(), registry_factory(),
            model=config.get("LLM_DEFAULT_CHAT_MODEL"), timeout=timeout,
        )
    raise ValueError(f"Unknown TASK_GENERATOR_BACKEND: {backend!r}")
