"""
POST /issues/open-pr
Opens a pull request from the latest patch posted in the issue conversation.
"""
import logging

from fastapi import APIRouter, Depends

from patchbot.agents.orchestrator import Orchestrator
from patchbot.agents.pr_agent import PullRequestAgent
from patchbot.api.deps import get_orchestrator, get_pr_agent
from patchbot.models.conversation import PublishOutcome
from patchbot.models.invocation import IssueTask

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/issues/open-pr", response_model=PublishOutcome)
async def open_pr(
    task: IssueTask,
    orchestrator: Orchestrator = Depends(get_orchestrator),
    pr_agent: PullRequestAgent = Depends(get_pr_agent),
):
    mode = orchestrator.resolve_mode()
    logger.info("Open-PR request for %s#%d (mode=%s)", task.repo_full_name, task.issue_number, mode.value)
    return await pr_agent.open_pr(task, mode)
