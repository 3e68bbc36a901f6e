"""
Local Process Backend
=====================
Runs the engine as a child process on this machine (single-tenant /
Action mode).

Process setup:
    - cwd and PYTHONPATH both point at the engine code directory.
    - The issue text goes into ``{root}/{task_id}/issue.txt`` and only the
      file path is passed on the command line.
    - Credentials override the host environment: every injected name is
      removed from the inherited environment first, then set to the
      injected value, even when that value is empty.

A nonzero exit code is logged and returned as a signal. The engine may have
written a useful partial result before crashing, so the ResultExtractor has
the final word.
"""
import asyncio
import logging
import os
from typing import Dict, List, Mapping, Optional

from patchbot.core.config import ACR_CODE_DIR, ACR_OUTPUT_ROOT, ACR_PYTHON
from patchbot.core.constants import ISSUE_TEXT_FILE
from patchbot.core.errors import SetupError
from patchbot.core.model_catalog import ModelSpec
from patchbot.executor.base import (
    READ_CHUNK_SIZE,
    EngineOutputForwarder,
    EngineSource,
    ExecutionOutcome,
    prepare_output_dir,
)
from patchbot.services.credential_resolver import ResolvedCredentials

logger = logging.getLogger(__name__)


def build_local_command(
    python: str,
    task_dir: str,
    engine_model: str,
    task_id: str,
    local_repo: str,
    issue_file: str,
) -> List[str]:
    """Engine command line for local-issue mode."""
    return [
        python,
        "app/main.py",
        "local-issue",
        "--output-dir", task_dir,
        "--model", engine_model,
        "--task-id", task_id,
        "--local-repo", local_repo,
        "--issue-msg", issue_file,
    ]


def build_engine_env(
    base_env: Mapping[str, str],
    credentials: Mapping[str, str],
    code_dir: str,
) -> Dict[str, str]:
    """
    Child environment for the engine.

    Injected credentials always win over the host environment, including
    an empty value meaning "not configured for this run".
    """
    env = dict(base_env)
    for name, value in credentials.items():
        env.pop(name, None)
        env[name] = value
    env["PYTHONPATH"] = code_dir
    return env


async def _forward_output(stream: asyncio.StreamReader) -> None:
    """Drain the engine's stdout in fixed-size chunks; line length is unbounded."""
    output = EngineOutputForwarder()
    while True:
        chunk = await stream.read(READ_CHUNK_SIZE)
        if not chunk:
            break
        output.feed(chunk)
    output.close()


def write_issue_file(task_dir: str, issue_text: str) -> str:
    path = os.path.join(task_dir, ISSUE_TEXT_FILE)
    with open(path, "w", encoding="utf-8") as f:
        f.write(issue_text)
    return path


class LocalProcessBackend:

    def __init__(
        self,
        code_dir: str = ACR_CODE_DIR,
        python: str = ACR_PYTHON,
        output_root: str = ACR_OUTPUT_ROOT,
    ) -> None:
        self.code_dir = code_dir
        self.python = python
        self.output_root = output_root

    async def run(
        self,
        task_id: str,
        model: ModelSpec,
        credentials: ResolvedCredentials,
        source: EngineSource,
        issue_text: Optional[str] = None,
        issue_url: Optional[str] = None,
    ) -> ExecutionOutcome:
        if not source.local_path:
            raise SetupError("local backend needs a local repository path")
        if not self.code_dir or not os.path.isdir(self.code_dir):
            raise SetupError(f"engine code directory not found: '{self.code_dir}'")

        task_dir = prepare_output_dir(self.output_root, task_id)
        issue_file = write_issue_file(task_dir, issue_text or "")

        command = build_local_command(
            self.python, task_dir, model.engine_model, task_id,
            os.path.abspath(source.local_path), issue_file,
        )
        env = build_engine_env(os.environ, credentials.engine_env(), self.code_dir)

        logger.info("Starting engine process | task=%s | model=%s | cwd=%s",
                    task_id, model.engine_model, self.code_dir)
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=self.code_dir,
                env=env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise SetupError(f"could not start engine process: {e}") from e

        try:
            if process.stdout is not None:
                await _forward_output(process.stdout)
            exit_code = await process.wait()
        finally:
            if process.returncode is None:
                logger.warning("Engine process for %s still running, killing it", task_id)
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()

        if exit_code != 0:
            logger.warning("Engine process for %s exited with code %d", task_id, exit_code)
        else:
            logger.info("Engine process for %s finished", task_id)

        return ExecutionOutcome(
            ran_to_completion=True,
            exit_code=exit_code,
            exit_info=f"process exited with code {exit_code}",
        )
