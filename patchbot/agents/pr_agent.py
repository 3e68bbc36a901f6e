"""
PR Agent
========
Handles an "open-pr" request: reads the issue conversation, locates the
latest patch and hands it to the GitPublisher.

Every outcome is also posted on the issue:
    - no patch / malformed patch → remediation message, no git work at all
    - git apply / push / PR failure → the underlying error text
    - success → link to the new pull request
"""
import logging
from typing import Optional

from patchbot.agents.git_publisher import GitPublisher
from patchbot.core.config import BOT_MENTION
from patchbot.core.constants import ExecutionMode
from patchbot.core.errors import ConversationError, MalformedPatch, PublishError
from patchbot.core.output_formatter import (
    malformed_patch_message,
    no_patch_message,
    publish_failed_message,
    pull_request_created_message,
)
from patchbot.models.conversation import PublishOutcome, PublishTarget
from patchbot.models.invocation import IssueTask
from patchbot.parser.patch_locator import locate_patch
from patchbot.services.github_client import GitHubClient

logger = logging.getLogger(__name__)


class PullRequestAgent:

    def __init__(
        self,
        github: GitHubClient,
        publisher: Optional[GitPublisher] = None,
        mention: str = BOT_MENTION,
    ) -> None:
        self.github = github
        self.publisher = publisher or GitPublisher(github)
        self.mention = mention

    async def open_pr(self, task: IssueTask, mode: ExecutionMode) -> PublishOutcome:
        github = self.github.for_token(task.installation_token)
        outcome = await self._open_pr(github, task, mode)
        await github.create_issue_comment(task.repo_full_name, task.issue_number, outcome.message)
        return outcome

    async def _open_pr(self, github: GitHubClient, task: IssueTask, mode: ExecutionMode) -> PublishOutcome:
        comments = await github.list_issue_comments(task.repo_full_name, task.issue_number)
        try:
            patch = locate_patch(comments)
        except ConversationError as e:
            logger.info("No usable patch on %s#%d: %s", task.repo_full_name, task.issue_number, e)
            if isinstance(e, MalformedPatch):
                message = malformed_patch_message(self.mention)
            else:
                message = no_patch_message(self.mention)
            return PublishOutcome(ok=False, message=message, diagnostic=e.diagnostic())

        target = PublishTarget(
            repo_full_name=task.repo_full_name,
            clone_url=task.repo_clone_url,
            mode=mode,
            push_token=task.installation_token,
        )
        try:
            pull_request = await self.publisher.publish(patch, task.issue_number, target, task.issue_title)
        except PublishError as e:
            logger.error("Publishing patch for %s#%d failed: %s",
                         task.repo_full_name, task.issue_number, e.diagnostic())
            return PublishOutcome(ok=False, message=publish_failed_message(str(e)), diagnostic=e.diagnostic())

        return PublishOutcome(
            ok=True,
            message=pull_request_created_message(pull_request.url),
            pull_request=pull_request,
        )
