"""
Conversation Models
===================
Pydantic models for the hosting platform side of the publish flow.

Comment        — one issue comment, reduced to what the patch locator needs
PullRequestRef — a created pull request
PublishTarget  — where a located patch is published
PublishOutcome — what an open-pr request ended with
"""
from typing import Optional
from pydantic import BaseModel, Field

from patchbot.core.constants import ExecutionMode

BOT_AUTHOR = "Bot"


class Comment(BaseModel):
    author_kind: str           # "Bot" | "User" | "Organization"
    author_login: str = ""
    body: str = ""

    @property
    def is_bot(self) -> bool:
        return self.author_kind == BOT_AUTHOR


class PullRequestRef(BaseModel):
    number: int
    url: str
    branch: str
    base: str


class PublishTarget(BaseModel):
    repo_full_name: str
    clone_url: str = ""
    mode: ExecutionMode
    push_token: Optional[str] = Field(default=None, repr=False)


class PublishOutcome(BaseModel):
    """Result of one open-pr request, as reported back to the caller."""
    ok: bool
    message: str
    diagnostic: Optional[str] = None
    pull_request: Optional[PullRequestRef] = None
