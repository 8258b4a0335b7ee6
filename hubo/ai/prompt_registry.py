"""
Hubo
Prompt Registry.

Holds the chat prompts used to generate next-stage backlog tasks and to
seed the current stage. A built-in template can be replaced without a deploy by dropping a YAML file
into HUBO_PROMPTS_DIR::

    name: backlog_task_generator
    version: v1
    system: |
      ...{{next_stage_label}}...
    user: Generate tasks for this backlog phase.

Placeholders use ``{{name}}``; a placeholder with no value is left in the
rendered text as-is so a broken override is visible in the model output
and logs instead of silently blank.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_PROMPTS_DIR = os.getenv(
    "HUBO_PROMPTS_DIR",
    os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), "prompts"),
)

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def fill_placeholders(text: str, variables: dict) -> str:
    return _PLACEHOLDER.sub(
        lambda m: str(variables[m.group(1)]) if m.group(1) in variables else m.group(0),
        text,
    )


@dataclass
class PromptTemplate:
    name: str
    system: str
    user: str = ""
    version: str = "v1"
    description: str = ""
    source: str = "builtin"
    metadata: dict = field(default_factory=dict)

    def render(self, **variables) -> list[dict]:
        """Return chat messages; empty system/user parts are dropped."""
        messages = []
        for role, text in (("system", self.system), ("user", self.user)):
            content = fill_placeholders(text, variables)
            if content.strip():
                messages.append({"role": role, "content": content})
        return messages

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "source": self.source,
        }


def load_prompt_file(path: Path) -> PromptTemplate | None:
    """Parse one YAML override; None (with an error log) if unusable."""
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        logger.error("Skipping prompt file %s: %s", path.name, exc)
        return None
    if not isinstance(data, dict) or not data.get("system"):
        logger.error("Skipping prompt file %s: no 'system' text", path.name)
        return None
    return PromptTemplate(
        name=data.get("name", path.stem),
        version=str(data.get("version", "v1")),
        system=data["system"],
        user=data.get("user", ""),
        description=data.get("description", ""),
        source=path.name,
        metadata=data.get("metadata") or {},
    )


class PromptRegistry:
    """Built-in templates overlaid with YAML files from ``prompts_dir``."""

    def __init__(self, prompts_dir: str | None = None):
        self._templates: dict[tuple[str, str], PromptTemplate] = {
            (tpl.name, tpl.version): tpl for tpl in _builtin_templates()
        }
        directory = Path(prompts_dir or _PROMPTS_DIR)
        if directory.is_dir():
            for path in sorted(directory.glob("*.yaml")):
                tpl = load_prompt_file(path)
                if tpl is not None:
                    self._templates[(tpl.name, tpl.version)] = tpl
                    logger.info("Prompt %s %s overridden from %s", tpl.name, tpl.version, path.name)

    def get(self, name: str, version: str = "v1") -> PromptTemplate | None:
        return self._templates.get((name, version))

    def render(self, name: str, version: str = "v1", **variables) -> list[dict]:
        tpl = self.get(name, version)
        if tpl is None:
            raise KeyError(f"Prompt template not found: {name} {version}")
        return tpl.render(**variables)

    def list_templates(self) -> list[dict]:
        return [tpl.to_dict() for tpl in self._templates.values()]


def _builtin_templates():
    return [
        PromptTemplate(
            name="backlog_task_generator",
            description="Propose the task batch for a project's next backlog stage",
            system=(
                "You are a project management AI assistant. Generate actionable tasks for the "
                "{{next_stage_label}} backlog phase.\n\n"
                "Project Details:\n"
                "- Title: {{project_title}}\n"
                "- Description: {{project_description}}\n"
                "- Project Brief: {{project_brief}}\n"
                "- Desired Outcomes: {{desired_outcomes}}\n\n"
                "Previous Backlog ({{previous_stage_label}}) Completed Work:\n"
                "{{previous_work}}\n\n"
                "{{additional_context}}\n\n"
                "Current Backlog Phase: {{stage_description}}\n\n"
                "Generate 4-6 specific, actionable tasks for the {{next_stage_label}} phase that:\n"
                "1. Build upon the work completed in the {{previous_stage_label}} phase\n"
                "2. Are appropriate for the {{next_stage_label}} stage\n"
                "3. Have clear deliverables and success criteria\n"
                "4. Include role assignments (accountable and responsible) based on the roles defined above\n"
                "5. Each task should have 3-5 concrete checklist items (activities) that break down the work\n\n"
                "Respond with JSON only, in the form:\n"
                '{"tasks": [{"title": "...", "description": "...", "accountable_role": "...", '
                '"responsible_role": "...", "activities": ["...", "..."]}]}'
            ),
            user="Generate tasks for this backlog phase.",
        ),
        PromptTemplate(
            name="stage_task_generator",
            description="Seed tasks for the backlog stage a project is currently in",
            system=(
                "You are an AI Transformation Project assistant. Generate actionable tasks for the "
                "{{next_stage_label}} backlog phase the project is currently in.\n\n"
                "Project Details:\n"
                "- Title: {{project_title}}\n"
                "- Description: {{project_description}}\n"
                "- Project Brief: {{project_brief}}\n"
                "- Desired Outcomes: {{desired_outcomes}}\n\n"
                "Tasks already in this phase (do not repeat them):\n"
                "{{existing_work}}\n\n"
                "{{additional_context}}\n\n"
                "Current Backlog Phase: {{stage_description}}\n\n"
                "Generate 3-5 specific, actionable tasks. For each task give a clear title, a "
                "brief description, the RESPONSIBLE role (does the work) and the ACCOUNTABLE "
                "role (owns the outcome), both chosen from the roles above, and 3-5 checklist "
                "items (activities).\n\n"
                "Respond with JSON only, in the form:\n"
                '{"tasks": [{"title": "...", "description": "...", "accountable_role": "...", '
                '"responsible_role": "...", "activities": ["...", "..."]}]}'
            ),
            user="Generate tasks for the current backlog phase.",
        ),
    ]
