"""
Request-scoped access to the objects built by the composition root
(main.py lifespan) and stored on ``app.state``.
"""
from fastapi import HTTPException, Request

from patchbot.agents.orchestrator import Orchestrator
from patchbot.agents.pr_agent import PullRequestAgent


def get_orchestrator(request: Request) -> Orchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Orchestrator not initialised")
    return orchestrator


def get_pr_agent(request: Request) -> PullRequestAgent:
    agent = getattr(request.app.state, "pr_agent", None)
    if agent is None:
        raise HTTPException(status_code=503, detail="PR agent not initialised")
    return agent
