"""
Model Catalog
=============
Which models a user may request, which provider serves each one, and how
each provider's key is named in the three places it lives:

    env_var       — host environment (single-tenant / Action mode)
    repo_variable — repository-scoped variable (multi-tenant / App mode)
    engine_var    — environment variable the engine itself reads

A model belongs to exactly one provider.
"""
from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class Provider:
    name: str
    env_var: str
    repo_variable: str
    engine_var: str


@dataclass(frozen=True)
class ModelSpec:
    name: str
    provider: Provider
    engine_model: str


OPENAI = Provider(
    name="openai",
    env_var="OPENAI_API_KEY",
    repo_variable="OPENAI_API_KEY",
    engine_var="OPENAI_KEY",
)

ANTHROPIC = Provider(
    name="anthropic",
    env_var="ANTHROPIC_API_KEY",
    repo_variable="ANTHROPIC_API_KEY",
    engine_var="ANTHROPIC_API_KEY",
)

PROVIDERS: Dict[str, Provider] = {p.name: p for p in (OPENAI, ANTHROPIC)}

_OPENAI_MODELS = [
    "gpt-4o-2024-08-06",
    "gpt-4o-2024-05-13",
    "gpt-4-turbo-2024-04-09",
    "gpt-4-0125-preview",
    "gpt-4-1106-preview",
]

_ANTHROPIC_MODELS = [
    "claude-3-5-sonnet-20240620",
    "claude-3-opus-20240229",
    "claude-3-sonnet-20240229",
]

MODELS: Dict[str, ModelSpec] = {
    **{m: ModelSpec(name=m, provider=OPENAI, engine_model=m) for m in _OPENAI_MODELS},
    **{m: ModelSpec(name=m, provider=ANTHROPIC, engine_model=m) for m in _ANTHROPIC_MODELS},
}

DEFAULT_MODEL = "gpt-4o-2024-08-06"


def get_model(name: str) -> Optional[ModelSpec]:
    return MODELS.get(name)


def is_known_model(name: str) -> bool:
    return name in MODELS
