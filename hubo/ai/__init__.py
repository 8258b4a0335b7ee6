"""
Hubo
AI module.

Submodules:
    - gateway: LLM Gateway (provider routing, optional retry, timeouts)
    - prompt_registry: built-in and YAML prompt templates
    - task_generator: next-stage task generation (LLM or remote HTTP service)
"""
