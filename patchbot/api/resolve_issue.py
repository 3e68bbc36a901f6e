"""
POST /issues/resolve
Runs the engine on an issue and posts the resulting patch (or failure) as a comment.
"""
import logging

from fastapi import APIRouter, Depends

from patchbot.agents.orchestrator import Orchestrator
from patchbot.api.deps import get_orchestrator
from patchbot.models.invocation import IssueTask
from patchbot.models.run_result import RunResult

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/issues/resolve", response_model=RunResult)
async def resolve_issue(task: IssueTask, orchestrator: Orchestrator = Depends(get_orchestrator)):
    logger.info("Resolve request for %s#%d (model=%s)", task.repo_full_name, task.issue_number,
                task.model_name or "<none>")
    return await orchestrator.resolve_issue(task)
