"""
Orchestrator Agent
==================
Top-level coordinator for one patch request.

State machine (one pass, no automatic retries):

    RESOLVING_MODE → RESOLVING_CREDENTIALS → DISPATCHING → EXTRACTING → DONE

    - Credential failures jump straight to DONE with a remediation
      message. No backend is launched.
    - A SetupError from the backend (missing image, spawn failure) jumps to
      DONE without extraction.
    - Any other backend failure is logged and extraction still runs: the
      engine may have written a usable result before it died.

Mode selection:
    EXECUTION_MODE=auto → App (container) when the engine image is present
    locally, otherwise Action (local process). ``app`` / ``action`` force a
    mode; forcing ``app`` without the image is a SetupError.

Retry model:
    A failed run is reported to the user, who re-invokes the bot. The retry
    reuses the task id, the engine writes a new timestamped run directory
    and that directory becomes authoritative. Older attempts stay on disk.

Concurrency:
    Runs for different task ids never share state. Runs for the same task id
    race on the output namespace unless SERIALIZE_PER_TASK holds a per-task
    lock across DISPATCHING and EXTRACTING.
"""
import logging
import os
from enum import Enum
from typing import List, Optional

import httpx

from patchbot.core.config import EXECUTION_MODE, SERIALIZE_PER_TASK, TARGET_REPO_PATH
from patchbot.core.constants import ExecutionMode
from patchbot.core.errors import (
    CredentialError,
    MissingCredential,
    PatchGenError,
    SetupError,
    UnknownModel,
)
from patchbot.core.output_formatter import (
    format_result_comment,
    missing_credential_message,
    no_credential_message,
    run_failed_message,
    unknown_model_message,
)
from patchbot.executor.base import EngineSource, ExecutionOutcome
from patchbot.executor.container_backend import ContainerBackend
from patchbot.executor.local_backend import LocalProcessBackend
from patchbot.models.invocation import InvocationRequest, IssueTask
from patchbot.models.run_result import RunResult
from patchbot.parser.result_extractor import ResultExtractor
from patchbot.services.credential_resolver import CredentialResolver, VariableLookup
from patchbot.services.github_client import GitHubClient
from patchbot.utils.task_identity import task_id as make_task_id
from patchbot.utils.task_locks import TaskLockRegistry

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    RESOLVING_MODE = "ResolvingMode"
    RESOLVING_CREDENTIALS = "ResolvingCredentials"
    DISPATCHING = "Dispatching"
    EXTRACTING = "Extracting"
    DONE = "Done"


def _credential_message(error: CredentialError) -> str:
    if isinstance(error, MissingCredential):
        return missing_credential_message(error.provider)
    if isinstance(error, UnknownModel):
        return unknown_model_message(error.model_name)
    return no_credential_message()


class Orchestrator:
    """
    Runs one patch request end to end and returns exactly one RunResult.
    """

    def __init__(
        self,
        container_backend: ContainerBackend,
        local_backend: LocalProcessBackend,
        github: Optional[GitHubClient] = None,
        resolver: Optional[CredentialResolver] = None,
        extractor: Optional[ResultExtractor] = None,
        locks: Optional[TaskLockRegistry] = None,
        execution_mode: str = EXECUTION_MODE,
        target_repo_path: str = TARGET_REPO_PATH,
    ) -> None:
        self.container_backend = container_backend
        self.local_backend = local_backend
        self.github = github
        self.resolver = resolver or CredentialResolver()
        self.extractor = extractor or ResultExtractor()
        self.locks = locks or TaskLockRegistry(enabled=SERIALIZE_PER_TASK)
        self.execution_mode = execution_mode
        self.target_repo_path = target_repo_path
        # States visited by the most recent invocation (diagnostics only)
        self.transitions: List[PipelineState] = []

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _enter(self, trace: List[PipelineState], state: PipelineState, tid: str) -> None:
        previous = trace[-1].value if trace else "-"
        trace.append(state)
        logger.info("[%s] %s → %s", tid, previous, state.value)

    def _fail(self, trace, tid: str, model: str, diagnostic: str, body: str = "") -> RunResult:
        self._enter(trace, PipelineState.DONE, tid)
        return RunResult(ok=False, body=body or run_failed_message(), diagnostic=diagnostic, model=model)

    def resolve_mode(self) -> ExecutionMode:
        """Pick the execution mode for this invocation."""
        if self.execution_mode == "app":
            return ExecutionMode.APP
        if self.execution_mode == "action":
            return ExecutionMode.ACTION
        if self.container_backend.image_available():
            return ExecutionMode.APP
        return ExecutionMode.ACTION

    def _variable_lookup(self, task: IssueTask) -> Optional[VariableLookup]:
        if self.github is None:
            return None
        github = self.github.for_token(task.installation_token)

        async def lookup(name: str) -> Optional[str]:
            try:
                return await github.get_repo_variable(task.repo_full_name, name)
            except httpx.HTTPError as e:
                logger.error("Could not read variable %s on %s: %s", name, task.repo_full_name, e)
                return None

        return lookup

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------
    async def run(self, task: IssueTask) -> RunResult:
        trace: List[PipelineState] = []
        self.transitions = trace
        tid = make_task_id(task.repo_full_name, task.issue_number)

        # 1. Mode
        self._enter(trace, PipelineState.RESOLVING_MODE, tid)
        mode = self.resolve_mode()
        if self.execution_mode == "app" and not self.container_backend.image_available():
            return self._fail(trace, tid, task.model_name, SetupError("engine image not available").diagnostic())
        if mode == ExecutionMode.ACTION and not self.target_repo_path:
            return self._fail(trace, tid, task.model_name, SetupError("TARGET_REPO_PATH is not set").diagnostic())
        logger.info("[%s] Execution mode: %s", tid, mode.value)

        # 2. Credentials
        self._enter(trace, PipelineState.RESOLVING_CREDENTIALS, tid)
        try:
            credentials = await self.resolver.resolve(task.model_name, mode, self._variable_lookup(task))
        except CredentialError as e:
            logger.warning("[%s] Credential resolution failed: %s", tid, e)
            return self._fail(trace, tid, task.model_name, e.diagnostic(), body=_credential_message(e))

        request = InvocationRequest(
            issue_number=task.issue_number,
            issue_url=task.issue_url,
            issue_text=task.issue_text,
            repo_full_name=task.repo_full_name,
            repo_clone_url=task.repo_clone_url,
            repo_owner=task.repo_owner,
            model_name=credentials.model.name,
            engine_model=credentials.model.engine_model,
            provider=credentials.provider.name,
            credentials=credentials.engine_env(),
            mode=mode,
            task_id=tid,
        )

        async with self.locks.hold(tid):
            return await self._dispatch_and_extract(trace, request, credentials)

    async def _dispatch_and_extract(self, trace, request: InvocationRequest, credentials) -> RunResult:
        tid = request.task_id

        # 3. Dispatch
        self._enter(trace, PipelineState.DISPATCHING, tid)
        if request.mode == ExecutionMode.APP:
            backend = self.container_backend
        else:
            backend = self.local_backend

        try:
            if request.mode == ExecutionMode.APP:
                source = EngineSource(clone_url=request.repo_clone_url)
            else:
                source = EngineSource(local_path=self.target_repo_path)
        except ValueError as e:
            logger.error("[%s] Invalid engine source: %s", tid, e)
            return self._fail(trace, tid, request.model_name, SetupError(str(e)).diagnostic())

        outcome: Optional[ExecutionOutcome] = None
        try:
            outcome = await backend.run(
                tid,
                credentials.model,
                credentials,
                source,
                issue_text=request.issue_text,
                issue_url=request.issue_url,
            )
        except SetupError as e:
            logger.error("[%s] Engine setup failed: %s", tid, e)
            return self._fail(trace, tid, request.model_name, e.diagnostic())
        except Exception:
            # Disk decides below; the engine may have written output before failing
            logger.exception("[%s] Engine run raised", tid)

        # 4. Extract
        self._enter(trace, PipelineState.EXTRACTING, tid)
        task_dir = os.path.join(backend.output_root, tid)
        try:
            result = self.extractor.extract(task_dir, tid, request.model_name)
        except (OSError, ValueError) as e:
            logger.exception("[%s] Reading engine output failed", tid)
            return self._fail(trace, tid, request.model_name, PatchGenError(f"unreadable output: {e}").diagnostic())
        if not result.ok:
            exit_info = outcome.exit_info if outcome else "engine raised before exiting"
            logger.warning("[%s] Run failed (%s; %s)", tid, result.diagnostic, exit_info)

        self._enter(trace, PipelineState.DONE, tid)
        return result

    async def resolve_issue(self, task: IssueTask) -> RunResult:
        """Run the pipeline and post the outcome on the issue."""
        result = await self.run(task)
        if self.github is not None:
            comment = format_result_comment(result.ok, result.body, result.cost)
            await self.github.for_token(task.installation_token).create_issue_comment(
                task.repo_full_name, task.issue_number, comment,
            )
        return result
