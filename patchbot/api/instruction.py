"""
POST /issues/instruction
Parses a bot mention from an issue body or comment and dispatches it to the
patch flow or the open-pr flow. Invalid instructions get the help text.
"""
import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from patchbot.agents.orchestrator import Orchestrator
from patchbot.agents.pr_agent import PullRequestAgent
from patchbot.api.deps import get_orchestrator, get_pr_agent
from patchbot.core.config import BOT_MENTION
from patchbot.core.output_formatter import help_message
from patchbot.models.conversation import PublishOutcome
from patchbot.models.invocation import IssueTask
from patchbot.models.run_result import RunResult
from patchbot.parser.instruction_parser import InstructionKind, InvalidInstruction, parse_instruction

logger = logging.getLogger(__name__)

router = APIRouter()


class InstructionRequest(BaseModel):
    text: str
    task: IssueTask


class InstructionResponse(BaseModel):
    action: str                 # "patch" | "pr" | "help" | "ignored"
    message: str = ""
    result: Optional[Union[RunResult, PublishOutcome]] = None


@router.post("/issues/instruction", response_model=InstructionResponse)
async def handle_instruction(
    request: InstructionRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
    pr_agent: PullRequestAgent = Depends(get_pr_agent),
):
    task = request.task
    try:
        instruction = parse_instruction(request.text, BOT_MENTION)
    except InvalidInstruction as e:
        logger.info("Invalid instruction '%s' on %s#%d", e, task.repo_full_name, task.issue_number)
        message = help_message(BOT_MENTION)
        if orchestrator.github is not None:
            await orchestrator.github.for_token(task.installation_token).create_issue_comment(
                task.repo_full_name, task.issue_number, message,
            )
        return InstructionResponse(action="help", message=message)

    if instruction is None:
        return InstructionResponse(action="ignored")

    if instruction.kind == InstructionKind.PR:
        outcome = await pr_agent.open_pr(task, orchestrator.resolve_mode())
        return InstructionResponse(action="pr", message=outcome.message, result=outcome)

    patch_task = task.model_copy(update={"model_name": instruction.model_name})
    result = await orchestrator.resolve_issue(patch_task)
    return InstructionResponse(action="patch", message=result.body, result=result)
