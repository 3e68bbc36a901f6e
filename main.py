import uvicorn
import time
import logging
from contextlib import asynccontextmanager

import docker
from docker.errors import DockerException
from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from patchbot.agents.orchestrator import Orchestrator
from patchbot.agents.pr_agent import PullRequestAgent
from patchbot.api.instruction import router as instruction_router
from patchbot.api.open_pr import router as open_pr_router
from patchbot.api.resolve_issue import router as resolve_issue_router
from patchbot.executor.container_backend import ContainerBackend
from patchbot.executor.local_backend import LocalProcessBackend
from patchbot.services.github_client import GitHubClient
from patchbot.utils.logging_config import setup_logging

# Initialize enhanced logging
setup_logging(level=logging.INFO)
logger = logging.getLogger("main")


def _docker_client():
    """Docker client for the container backend, or None when no daemon is reachable."""
    try:
        client = docker.from_env()
        client.ping()
        return client
    except DockerException as e:
        logger.warning("Docker unavailable, container backend disabled: %s", e)
        return None


# ---------------------------------------------------------------------------
# Composition root — owns the docker client and the HTTP client
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    docker_client = _docker_client()
    github = GitHubClient()

    app.state.orchestrator = Orchestrator(
        container_backend=ContainerBackend(docker_client),
        local_backend=LocalProcessBackend(),
        github=github,
    )
    app.state.pr_agent = PullRequestAgent(github)
    logger.info("patchbot ready (docker=%s)", "yes" if docker_client else "no")

    try:
        yield
    finally:
        await github.aclose()
        if docker_client is not None:
            docker_client.close()
        logger.info("patchbot stopped")


app = FastAPI(title="patchbot — issue to patch to pull request", lifespan=lifespan)


# ---------------------------------------------------------------------------
# Logging Middleware
# ---------------------------------------------------------------------------
class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        client_host = request.client.host if request.client else "unknown"
        logger.info(f"Incoming: {request.method} {request.url.path} from {client_host}")

        try:
            response = await call_next(request)
            process_time = (time.time() - start_time) * 1000
            logger.info(
                f"Outgoing: {request.method} {request.url.path} - "
                f"Status: {response.status_code} - "
                f"Time: {process_time:.2f}ms"
            )
            return response
        except Exception as e:
            logger.error(f"Request failed: {request.method} {request.url.path} - Error: {str(e)}")
            raise


app.add_middleware(LoggingMiddleware)


# Health endpoint
@app.get("/health")
async def health_check():
    return {"status": "ok"}


# Register routers
app.include_router(resolve_issue_router, tags=["Issues"])
app.include_router(open_pr_router, tags=["Issues"])
app.include_router(instruction_router, tags=["Issues"])

if __name__ == "__main__":
    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=True)
