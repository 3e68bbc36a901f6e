"""
Execution Backend Contract
==========================
Shared contract for the two ways of running the engine.

BOUNDARY RULES:
    - A backend ONLY launches the engine and reports how it exited.
    - A backend NEVER reads the engine's output files — that is the
      ResultExtractor's job. A nonzero exit is a signal, not a verdict.
    - Launch failures (missing image, process spawn failure) raise
      SetupError so the orchestrator can skip extraction.

Both backends stream engine output to the engine logger while it runs and
pre-create ``{root}/{task_id}`` before launch, so extraction always has a
directory to scan even if the engine dies immediately.
"""
import codecs
import os
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from patchbot.core.model_catalog import ModelSpec
from patchbot.services.credential_resolver import ResolvedCredentials
from patchbot.utils.logging_config import get_engine_logger

logger = logging.getLogger(__name__)

# Raw bytes read from the engine per call, and the longest line buffered
# before it is flushed as-is
READ_CHUNK_SIZE = 64 * 1024
MAX_LINE_LENGTH = 1024 * 1024


@dataclass(frozen=True)
class EngineSource:
    """Exactly one of clone_url (container mode) or local_path (local mode)."""
    clone_url: Optional[str] = None
    local_path: Optional[str] = None

    def __post_init__(self) -> None:
        if bool(self.clone_url) == bool(self.local_path):
            raise ValueError("EngineSource needs exactly one of clone_url or local_path")


@dataclass
class ExecutionOutcome:
    """
    How the engine run ended.

    Fields
    ------
    ran_to_completion : bool
        True if the engine process/container ran and exited on its own.
    exit_code : int | None
        Process or container exit status, None if it never exited normally.
    exit_info : str
        Human-readable description for logs and diagnostics.
    """
    ran_to_completion: bool
    exit_code: Optional[int] = None
    exit_info: str = ""


class ExecutionBackend(Protocol):

    async def run(
        self,
        task_id: str,
        model: ModelSpec,
        credentials: ResolvedCredentials,
        source: EngineSource,
        issue_text: Optional[str] = None,
        issue_url: Optional[str] = None,
    ) -> ExecutionOutcome:
        ...


def prepare_output_dir(output_root: str, task_id: str) -> str:
    """Create and return ``{output_root}/{task_id}``."""
    task_dir = os.path.abspath(os.path.join(output_root, task_id))
    os.makedirs(task_dir, exist_ok=True)
    logger.debug("Output directory ready: %s", task_dir)
    return task_dir


class EngineOutputForwarder:
    """
    Splits raw engine output into lines for the engine logger.

    Chunks may end anywhere, including inside a multi-byte UTF-8 sequence
    or in the middle of a very long line. Undecodable bytes become U+FFFD
    and a line longer than MAX_LINE_LENGTH is flushed in pieces, so the
    output can never stop a run.
    """

    def __init__(self, engine_log: Optional[logging.Logger] = None) -> None:
        self.engine_log = engine_log or get_engine_logger()
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes) -> None:
        self._pending += self._decoder.decode(chunk)
        *lines, self._pending = self._pending.split("\n")
        for line in lines:
            self._emit(line)
        while len(self._pending) > MAX_LINE_LENGTH:
            self._emit(self._pending[:MAX_LINE_LENGTH])
            self._pending = self._pending[MAX_LINE_LENGTH:]

    def close(self) -> None:
        self._pending += self._decoder.decode(b"", final=True)
        if self._pending:
            self._emit(self._pending)
        self._pending = ""

    def _emit(self, line: str) -> None:
        self.engine_log.info(line.rstrip("\r"))
