"""
Hubo
Tests: Backlog Task Generator.

Covers:
    - validate_generated_tasks: accepted shapes, normalisation, rejections
    - HttpTaskGenerator: payload, auth header, timeout, HTTP/JSON failures
    - LLMTaskGenerator: prompt rendering with project context, local stub
      response, code-fence parsing, gateway failure, no-retry policy
    - build_task_generator: backend selection
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from hubo.ai.gateway import LLMError, LLMGateway
from hubo.ai.prompt_registry import PromptRegistry
from hubo.ai.task_generator import (
    GenerationRequest,
    HttpTaskGenerator,
    LLMTaskGenerator,
    TaskGenerationError,
    build_task_generator,
    validate_generated_tasks,
)


def _request(**overrides):
    data = {
        "project_id": "p-1",
        "previous_stage": "business_innovation",
        "next_stage": "engineering",
    }
    data.update(overrides)
    return GenerationRequest(**data)


def _http_response(status=200, body=None, json_error=False):
    response = MagicMock()
    response.status_code = status
    response.ok = 200 <= status < 300
    response.text = "upstream says no"
    if json_error:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = body
    return response


# ═════════════════════════════════════════════════════════════════════════════
# VALIDATION
# ═════════════════════════════════════════════════════════════════════════════


class TestValidateGeneratedTasks:

    def test_object_with_tasks(self):
        tasks = validate_generated_tasks({"tasks": [
            {"title": " Build API ", "description": "REST", "accountable_role": "Architect",
             "responsible_role": "Engineer", "activities": [" Design ", "Implement"]},
        ]})
        assert tasks == [{
            "title": "Build API",
            "description": "REST",
            "accountable_role": "Architect",
            "responsible_role": "Engineer",
            "activities": ["Design", "Implement"],
        }]

    def test_bare_list_and_optional_fields(self):
        tasks = validate_generated_tasks([{"title": "Only a title"}])
        assert tasks[0]["activities"] == []
        assert tasks[0]["description"] is None

    def test_empty_batch_is_valid(self):
        assert validate_generated_tasks({"tasks": []}) == []

    @pytest.mark.parametrize("payload", [
        {},
        {"tasks": "nope"},
        "string",
        None,
        {"tasks": ["not an object"]},
        {"tasks": [{"title": ""}]},
        {"tasks": [{"title": 42}]},
        {"tasks": [{"title": "ok", "description": 5}]},
        {"tasks": [{"title": "ok", "activities": "one"}]},
        {"tasks": [{"title": "ok", "activities": ["fine", ""]}]},
    ])
    def test_rejects_malformed(self, payload):
        with pytest.raises(TaskGenerationError):
            validate_generated_tasks(payload)

    def test_role_names_cut_to_column_length(self):
        tasks = validate_generated_tasks({"tasks": [
            {"title": "T" * 400, "accountable_role": "A" * 500, "responsible_role": "R" * 101,
             "description": "D" * 2000},
        ]})
        assert len(tasks[0]["title"]) == 300
        assert tasks[0]["accountable_role"] == "A" * 100
        assert tasks[0]["responsible_role"] == "R" * 100
        assert len(tasks[0]["description"]) == 2000

    def test_one_bad_task_rejects_batch(self):
        with pytest.raises(TaskGenerationError, match=r"tasks\[1\]"):
            validate_generated_tasks({"tasks": [{"title": "good"}, {"title": None}]})


# ═════════════════════════════════════════════════════════════════════════════
# HTTP GENERATOR
# ═════════════════════════════════════════════════════════════════════════════


class TestHttpTaskGenerator:

    def test_requires_url(self):
        with pytest.raises(ValueError):
            HttpTaskGenerator("")

    @patch("hubo.ai.task_generator.requests.post")
    def test_posts_payload_with_timeout(self, mock_post):
        mock_post.return_value = _http_response(body={"tasks": [{"title": "Build"}]})
        gen = HttpTaskGenerator("https://gen.example/tasks", api_key="k-1", timeout=12)

        tasks = gen.generate(_request(additional_context="EU only"))

        assert tasks[0]["title"] == "Build"
        args, kwargs = mock_post.call_args
        assert args[0] == "https://gen.example/tasks"
        assert kwargs["json"] == {
            "projectId": "p-1",
            "previousStage": "business_innovation",
            "nextStage": "engineering",
            "additionalContext": "EU only",
        }
        assert kwargs["timeout"] == 12
        assert kwargs["headers"]["Authorization"] == "Bearer k-1"

    @patch("hubo.ai.task_generator.requests.post")
    def test_no_context_no_auth(self, mock_post):
        mock_post.return_value = _http_response(body={"tasks": []})
        HttpTaskGenerator("https://gen.example/tasks").generate(_request())
        kwargs = mock_post.call_args.kwargs
        assert "additionalContext" not in kwargs["json"]
        assert "Authorization" not in kwargs["headers"]

    @patch("hubo.ai.task_generator.requests.post")
    def test_timeout(self, mock_post):
        mock_post.side_effect = requests.Timeout("slow")
        with pytest.raises(TaskGenerationError, match="timed out"):
            HttpTaskGenerator("https://gen.example/tasks", timeout=1).generate(_request())

    @patch("hubo.ai.task_generator.requests.post")
    def test_connection_error(self, mock_post):
        mock_post.side_effect = requests.ConnectionError("refused")
        with pytest.raises(TaskGenerationError, match="unreachable"):
            HttpTaskGenerator("https://gen.example/tasks").generate(_request())

    @patch("hubo.ai.task_generator.requests.post")
    def test_http_error_status(self, mock_post):
        mock_post.return_value = _http_response(status=500)
        with pytest.raises(TaskGenerationError, match="HTTP 500"):
            HttpTaskGenerator("https://gen.example/tasks").generate(_request())

    @patch("hubo.ai.task_generator.requests.post")
    def test_invalid_json(self, mock_post):
        mock_post.return_value = _http_response(json_error=True)
        with pytest.raises(TaskGenerationError, match="invalid JSON"):
            HttpTaskGenerator("https://gen.example/tasks").generate(_request())

    @patch("hubo.ai.task_generator.requests.post")
    def test_schema_violation(self, mock_post):
        mock_post.return_value = _http_response(body={"tasks": [{"name": "no title"}]})
        with pytest.raises(TaskGenerationError):
            HttpTaskGenerator("https://gen.example/tasks").generate(_request())


# ═════════════════════════════════════════════════════════════════════════════
# LLM GENERATOR
# ═════════════════════════════════════════════════════════════════════════════


@pytest.fixture
def registry(tmp_path):
    return PromptRegistry(prompts_dir=str(tmp_path / "missing"))


class TestLLMTaskGenerator:

    def test_local_stub_engineering_batch(self, make_project, make_task, registry):
        project = make_project(title="Churn predictor", backlog="engineering")
        make_task(project, title="Validate business case", backlog="business_innovation", status="done")
        gen = LLMTaskGenerator(LLMGateway(), registry, model="local-stub")

        tasks = gen.generate(_request(project_id=project.id))

        assert [t["title"] for t in tasks] == ["Write technical specification", "Build data pipeline"]
        assert all(t["activities"] for t in tasks)

    def test_local_stub_outcomes_batch(self, make_project, registry):
        project = make_project(backlog="outcomes_adoption")
        gen = LLMTaskGenerator(LLMGateway(), registry, model="local-stub")

        tasks = gen.generate(_request(
            project_id=project.id, previous_stage="engineering", next_stage="outcomes_adoption",
        ))
        assert [t["title"] for t in tasks] == ["Plan launch and training"]

    def test_local_stub_seeds_current_stage(self, make_project, registry):
        project = make_project(backlog="business_innovation")
        gen = LLMTaskGenerator(LLMGateway(), registry, model="local-stub")

        tasks = gen.generate(_request(
            project_id=project.id, previous_stage=None, next_stage="business_innovation",
        ))

        assert [t["title"] for t in tasks] == [
            "Diagnose current situation", "Identify leap of faith assumptions",
        ]
        assert tasks[0]["responsible_role"] == "Business Analyst"

    def test_seed_prompt_lists_existing_stage_tasks(self, make_project, make_task, registry):
        project = make_project(backlog="engineering")
        make_task(project, title="Validate business case", backlog="business_innovation", status="done")
        make_task(project, title="Draft architecture", backlog="engineering")
        gateway = MagicMock()
        gateway.chat.return_value = {"content": '{"tasks": []}'}

        LLMTaskGenerator(gateway, registry).generate(_request(
            project_id=project.id, previous_stage=None, next_stage="engineering",
        ))

        args, kwargs = gateway.chat.call_args
        prompt = "\n".join(m["content"] for m in args[0])
        assert "Draft architecture" in prompt
        assert "Validate business case" not in prompt
        assert "do not repeat them" in prompt
        assert kwargs["purpose"] == "stage_task_generator"

    def test_prompt_carries_project_context(self, make_project, make_task, registry):
        project = make_project(title="Churn predictor", project_brief="Reduce churn 10%",
                               desired_outcomes="Retention up")
        make_task(project, title="Interview sales team", status="done")
        gateway = MagicMock()
        gateway.chat.return_value = {"content": '{"tasks": [{"title": "Build model"}]}'}
        gen = LLMTaskGenerator(gateway, registry, model="local-stub", timeout=7)

        gen.generate(_request(project_id=project.id, additional_context="Use existing CRM data"))

        args, kwargs = gateway.chat.call_args
        prompt = "\n".join(m["content"] for m in args[0])
        assert "Churn predictor" in prompt
        assert "Reduce churn 10%" in prompt
        assert "Interview sales team" in prompt
        assert "Use existing CRM data" in prompt
        assert "AI System Architect" in prompt
        assert kwargs["max_retries"] == 1
        assert kwargs["timeout"] == 7

    def test_code_fenced_reply(self, make_project, registry):
        project = make_project()
        gateway = MagicMock()
        gateway.chat.return_value = {
            "content": '```json\n{"tasks": [{"title": "Fenced"}]}\n```',
        }
        tasks = LLMTaskGenerator(gateway, registry).generate(_request(project_id=project.id))
        assert tasks[0]["title"] == "Fenced"

    def test_non_json_reply(self, make_project, registry):
        project = make_project()
        gateway = MagicMock()
        gateway.chat.return_value = {"content": "Sorry, I cannot help with that."}
        with pytest.raises(TaskGenerationError, match="not valid JSON"):
            LLMTaskGenerator(gateway, registry).generate(_request(project_id=project.id))

    def test_gateway_failure_wrapped(self, make_project, registry):
        project = make_project()
        gateway = MagicMock()
        gateway.chat.side_effect = LLMError("LLM call failed after 1 attempt(s)")
        with pytest.raises(TaskGenerationError, match="AI generation failed"):
            LLMTaskGenerator(gateway, registry).generate(_request(project_id=project.id))

    def test_missing_project(self, registry):
        with pytest.raises(TaskGenerationError, match="not found"):
            LLMTaskGenerator(MagicMock(), registry).generate(_request(project_id="missing"))


class TestGatewayRetryPolicy:

    def test_single_attempt_when_retries_disabled(self):
        gw = LLMGateway()
        provider = MagicMock()
        provider.chat.side_effect = TimeoutError("slow provider")
        gw._providers["local"] = provider

        with pytest.raises(LLMError, match="1 attempt"):
            gw.chat([{"role": "user", "content": "hi"}], "local-stub", max_retries=1, timeout=1)
        assert provider.chat.call_count == 1
        assert provider.chat.call_args.kwargs["timeout"] == 1


# ═════════════════════════════════════════════════════════════════════════════
# FACTORY
# ═════════════════════════════════════════════════════════════════════════════


class TestBuildTaskGenerator:

    def _build(self, **cfg):
        return build_task_generator(cfg, MagicMock(name="gateway"), MagicMock(name="registry"))

    def test_none_backend(self):
        assert self._build(TASK_GENERATOR_BACKEND="none") is None

    def test_http_backend(self):
        gen = self._build(TASK_GENERATOR_BACKEND="http", TASK_GENERATOR_URL="https://x",
                          TASK_GENERATOR_TIMEOUT=5)
        assert isinstance(gen, HttpTaskGenerator)
        assert gen.timeout == 5

    def test_http_backend_without_url(self):
        with pytest.raises(ValueError):
            self._build(TASK_GENERATOR_BACKEND="http")

    def test_llm_backend_default_timeout(self):
        gen = self._build(TASK_GENERATOR_BACKEND="LLM", LLM_DEFAULT_CHAT_MODEL="local-stub")
        assert isinstance(gen, LLMTaskGenerator)
        assert gen.timeout == 30
        assert gen.model == "local-stub"

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            self._build(TASK_GENERATOR_BACKEND="carrier-pigeon")
