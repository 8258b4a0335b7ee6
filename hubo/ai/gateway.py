"""
Hubo
LLM Gateway.

Routes a chat request to a provider by model name:

    gemini-*   Google Gemini (google-genai), needs GEMINI_API_KEY
    gpt-*      OpenAI, needs OPENAI_API_KEY
    local-stub deterministic offline replies, always available

A model whose provider has no API key configured is served by the local
stub with a warning, so development and the test suite run offline.

Usage:
    gw = LLMGateway()
    reply = gw.chat(messages, "gemini-2.5-flash", purpose="backlog_task_generator",
                    max_retries=1, timeout=30)
    reply["content"]
"""

import json
import logging
import os
import re
import time
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4096
DEFAULT_TEMPERATURE = 0.3


class LLMError(RuntimeError):
    """Every attempt at a chat call failed."""


class LLMProvider(ABC):
    name = ""

    @abstractmethod
    def chat(self, messages: list, model: str, **kwargs) -> dict:
        """Return ``{content, prompt_tokens, completion_tokens, model}``.

        kwargs: temperature, max_tokens, timeout (seconds),
        response_mime_type.
        """


class OpenAIProvider(LLMProvider):
    name = "openai"

    def __init__(self, api_key: str):
        import openai
        self._client = openai.OpenAI(api_key=api_key)

    def chat(self, messages: list, model: str, **kwargs) -> dict:
        params = {
            "model": model,
            "messages": messages,
            "max_tokens": kwargs.get("max_tokens", DEFAULT_MAX_TOKENS),
            "temperature": kwargs.get("temperature", DEFAULT_TEMPERATURE),
        }
        if kwargs.get("timeout"):
            params["timeout"] = kwargs["timeout"]
        if kwargs.get("response_mime_type") == "application/json":
            params["response_format"] = {"type": "json_object"}
        response = self._client.chat.completions.create(**params)
        return {
            "content": response.choices[0].message.content or "",
            "prompt_tokens": response.usage.prompt_tokens,
            "completion_tokens": response.usage.completion_tokens,
            "model": model,
        }


class GeminiProvider(LLMProvider):
    """Gemini via google-genai. System messages become the system instruction."""

    name = "gemini"

    def __init__(self, api_key: str):
        from google import genai
        self._client = genai.Client(api_key=api_key)

    def chat(self, messages: list, model: str, **kwargs) -> dict:
        from google.genai import types

        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        contents = [
            types.Content(
                role="model" if m["role"] == "assistant" else "user",
                parts=[types.Part(text=m["content"])],
            )
            for m in messages
            if m["role"] != "system"
        ]
        config = types.GenerateContentConfig(
            temperature=kwargs.get("temperature", DEFAULT_TEMPERATURE),
            max_output_tokens=kwargs.get("max_tokens", DEFAULT_MAX_TOKENS),
            response_mime_type=kwargs.get("response_mime_type"),
            system_instruction=system or None,
        )
        if kwargs.get("timeout"):
            # milliseconds
            config.http_options = types.HttpOptions(timeout=int(kwargs["timeout"] * 1000))

        response = self._client.models.generate_content(model=model, contents=contents, config=config)
        usage = response.usage_metadata
        return {
            "content": response.text or "",
            "prompt_tokens": getattr(usage, "prompt_token_count", 0) or 0,
            "completion_tokens": getattr(usage, "candidates_token_count", 0) or 0,
            "model": model,
        }


# Canned task batches, keyed by the stage label the prompt asks for
STUB_TASKS = {
    "Business Innovation": [
        {
            "title": "Diagnose current situation",
            "description": "Map the as-is process, its pain points and baseline metrics.",
            "accountable_role": "AI Innovation Executive",
            "responsible_role": "Business Analyst",
            "activities": [
                "Interview process owners",
                "Map the as-is process",
                "Record baseline metrics",
            ],
        },
        {
            "title": "Identify leap of faith assumptions",
            "description": "Name the riskiest assumptions behind the AI redesign.",
            "accountable_role": "AI Innovation Executive",
            "responsible_role": "AI Process Reengineer",
            "activities": [
                "List value and growth assumptions",
                "Rank assumptions by risk",
                "Plan an experiment for the top assumption",
            ],
        },
    ],
    "Engineering": [
        {
            "title": "Write technical specification",
            "description": "Translate the validated business case into a build-ready specification.",
            "accountable_role": "AI System Architect",
            "responsible_role": "AI System Engineer",
            "activities": [
                "Document target architecture",
                "Define data contracts",
                "Review spec with business owner",
            ],
        },
        {
            "title": "Build data pipeline",
            "description": "Implement ingestion and analytics for the solution.",
            "accountable_role": "AI System Architect",
            "responsible_role": "AI Data Engineer",
            "activities": [
                "Provision storage",
                "Implement ingestion job",
                "Add monitoring dashboard",
            ],
        },
    ],
    "Outcomes & Adoption": [
        {
            "title": "Plan launch and training",
            "description": "Prepare rollout communications and user training.",
            "accountable_role": "Change Leadership Architect",
            "responsible_role": "Education Implementation Executive",
            "activities": [
                "Draft launch plan",
                "Schedule training sessions",
                "Collect feedback",
            ],
        },
    ],
}

_STAGE_IN_PROMPT = re.compile(r"tasks for the (.+?) backlog phase")


class LocalStubProvider(LLMProvider):
    """Offline provider: answers task-generation prompts with STUB_TASKS."""

    name = "local"

    def chat(self, messages: list, model: str, **kwargs) -> dict:
        prompt = "\n".join(m["content"] for m in messages)
        match = _STAGE_IN_PROMPT.search(prompt)
        tasks = STUB_TASKS.get(match.group(1), []) if match else []
        content = json.dumps({"tasks": tasks})
        return {
            "content": content,
            "prompt_tokens": len(prompt.split()),
            "completion_tokens": len(content.split()),
            "model": "local-stub",
        }


# (model prefix, provider name, api key env var)
_ROUTES = (
    ("gemini-", "gemini", "GEMINI_API_KEY"),
    ("gpt-", "openai", "OPENAI_API_KEY"),
)
_PROVIDER_CLASSES = {"gemini": GeminiProvider, "openai": OpenAIProvider}


class LLMGateway:
    """Single entry point for chat calls; logs tokens and latency per call."""

    DEFAULT_CHAT_MODEL = os.getenv("LLM_DEFAULT_CHAT_MODEL", "gemini-2.5-flash")

    def __init__(self):
        self._providers: dict[str, LLMProvider] = {"local": LocalStubProvider()}
        for _prefix, name, env_var in _ROUTES:
            api_key = os.getenv(env_var)
            if api_key:
                self._providers[name] = _PROVIDER_CLASSES[name](api_key)

    @property
    def available_providers(self) -> list[str]:
        return sorted(self._providers)

    def provider_for(self, model: str) -> LLMProvider:
        for prefix, name, _env_var in _ROUTES:
            if model.startswith(prefix):
                if name in self._providers:
                    return self._providers[name]
                logger.warning("No API key for provider '%s'; model '%s' served by local stub",
                               name, model)
                break
        return self._providers["local"]

    def chat(self, messages: list, model: str | None = None, *,
             purpose: str = "", max_retries: int = 3, **kwargs) -> dict:
        """
        Send ``messages`` to the provider serving ``model``.

        ``max_retries`` is the total number of attempts (1 = no retry);
        attempts are spaced 1s, 2s, 4s apart. The reply dict gains
        ``latency_ms`` and ``provider``.

        Raises:
            LLMError: when every attempt failed.
        """
        model = model or self.DEFAULT_CHAT_MODEL
        provider = self.provider_for(model)
        attempts = max(max_retries, 1)
        last_error = None

        for attempt in range(1, attempts + 1):
            started = time.perf_counter()
            try:
                reply = provider.chat(messages, model, **kwargs)
            except Exception as exc:  # provider SDKs raise their own hierarchies
                last_error = exc
                logger.warning("LLM call failed purpose=%s provider=%s attempt=%d/%d: %s",
                               purpose, provider.name, attempt, attempts, exc)
                if attempt < attempts:
                    time.sleep(min(2 ** (attempt - 1), 4))
                continue

            reply["latency_ms"] = int((time.perf_counter() - started) * 1000)
            reply["provider"] = provider.name
            logger.info("LLM call ok purpose=%s provider=%s model=%s tokens=%d latency_ms=%d",
                        purpose, provider.name, reply.get("model", model),
                        reply["prompt_tokens"] + reply["completion_tokens"], reply["latency_ms"])
            return reply

        raise LLMError(f"LLM call failed after {attempts} attempt(s): {last_error}")
