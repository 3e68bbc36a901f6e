"""
Invocation Models
=================
Pydantic models describing one triggering event.

IssueTask
    What the caller knows when a user asks for a patch: the issue, the
    repository, and the requested model name (may be empty).

InvocationRequest
    Immutable value built by the orchestrator once the execution mode and
    credentials are resolved. Created once per triggering event, never
    mutated, discarded when the pipeline completes.

Credentials are excluded from repr so that logging a request never prints
a key.
"""
from typing import Dict, Optional
from pydantic import BaseModel, ConfigDict, Field

from patchbot.core.constants import ExecutionMode


class IssueTask(BaseModel):
    issue_number: int
    issue_url: str = ""
    issue_title: str = ""
    issue_body: str = ""
    repo_full_name: str
    repo_clone_url: str = ""
    repo_owner: str = ""
    model_name: str = ""
    # Short-lived installation token (multi-tenant only)
    installation_token: Optional[str] = Field(default=None, repr=False)

    @property
    def issue_text(self) -> str:
        """Title and body, the way the engine expects to read the issue."""
        return f"{self.issue_title}\n{self.issue_body}"


class InvocationRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    issue_number: int
    issue_url: str
    issue_text: str
    repo_full_name: str
    repo_clone_url: str
    repo_owner: str
    model_name: str
    engine_model: str
    provider: str
    credentials: Dict[str, str] = Field(default_factory=dict, repr=False)
    mode: ExecutionMode
    task_id: str
