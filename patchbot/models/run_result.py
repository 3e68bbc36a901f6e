"""
Run Result Model
================
Terminal artifact of the orchestration pipeline. Exactly one per
InvocationRequest.

Fields:
    ok            — True if the engine produced a patch or an explored-locations report
    body          — fenced patch, explored-locations list, or a user-facing failure message
    diagnostic    — "<Category>: detail" for operators (never shown to end users)
    model         — model name the run was requested with
    cost          — total USD cost reported by the engine (None = unknown)
    input_tokens  — total input tokens reported by the engine
    output_tokens — total output tokens reported by the engine
"""
from typing import Optional
from pydantic import BaseModel


class RunResult(BaseModel):
    ok: bool
    body: str = ""
    diagnostic: Optional[str] = None
    model: str = ""
    cost: Optional[float] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None

    @property
    def category(self) -> str:
        """Diagnostic category ("SetupError", ...) or "" when ok."""
        if not self.diagnostic:
            return ""
        return self.diagnostic.split(":", 1)[0]
