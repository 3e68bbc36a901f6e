"""
Result Extractor
================
Turns the engine's on-disk output into a RunResult.

The disk is the single source of truth: a nonzero exit code does not mean
failure and a zero exit code does not mean success. Only the files below
decide.

Layout (under the task directory ``{root}/{task_id}``):
    {task_id}_{timestamp}/final_patch.diff     — unified diff
    {task_id}_{timestamp}/fix_locations.json   — JSON array of JSON-encoded
                                                 {file, class, method} strings
    {task_id}_{timestamp}/cost.json            — {total_cost,
                                                 total_input_tokens,
                                                 total_output_tokens}

Decision order:
    1. no run directory           → ok=False, SetupError (engine never wrote output)
    2. latest run directory wins  (names sort by timestamp)
    3. final_patch.diff present   → ok=True, fenced patch + cost
    4. fix_locations.json present → ok=True, explored locations
    5. otherwise                  → ok=False, PatchGenError
"""
import json
import logging
import os
from typing import Any, Dict, List, Optional, Tuple

from patchbot.core.constants import COST_FILE, FINAL_PATCH_FILE, FIX_LOCATIONS_FILE
from patchbot.core.errors import PatchGenError, SetupError
from patchbot.core.output_formatter import (
    NO_PATCH_HEADING,
    format_location,
    run_failed_message,
    wrap_patch,
)
from patchbot.models.run_result import RunResult

logger = logging.getLogger(__name__)


def find_run_dirs(output_root: str, task_id: str) -> List[str]:
    """Immediate subdirectory names of output_root that contain task_id, sorted."""
    if not os.path.isdir(output_root):
        return []
    return sorted(
        name for name in os.listdir(output_root)
        if task_id in name and os.path.isdir(os.path.join(output_root, name))
    )


def read_cost(run_dir: str) -> Tuple[Optional[float], Optional[int], Optional[int]]:
    """(cost, input_tokens, output_tokens); all None when unknown."""
    path = os.path.join(run_dir, COST_FILE)
    if not os.path.isfile(path):
        return None, None, None
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return (
            _as_number(data.get("total_cost"), float),
            _as_number(data.get("total_input_tokens"), int),
            _as_number(data.get("total_output_tokens"), int),
        )
    except (OSError, ValueError, AttributeError) as e:
        logger.warning("Ignoring unreadable %s: %s", path, e)
        return None, None, None


def _as_number(value: Any, kind):
    if value is None:
        return None
    try:
        return kind(value)
    except (TypeError, ValueError):
        return None


def parse_locations(raw: List[Any]) -> List[Dict[str, str]]:
    """Decode location records; each entry is a JSON string (or already a dict)."""
    locations = []
    for entry in raw:
        record = json.loads(entry) if isinstance(entry, str) else entry
        if not isinstance(record, dict):
            raise ValueError(f"location record is not an object: {entry!r}")
        locations.append({
            "file": str(record.get("file") or ""),
            "class": str(record.get("class") or ""),
            "method": str(record.get("method") or ""),
        })
    return locations


def read_patch(path: str) -> str:
    """
    Patch text as written by the engine.

    Diffs of non-UTF-8 sources are kept readable: undecodable bytes become
    U+FFFD instead of failing the run.
    """
    with open(path, "rb") as f:
        raw = f.read()
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        logger.warning("%s is not valid UTF-8, undecodable bytes replaced", path)
        return raw.decode("utf-8", errors="replace")


def render_locations(locations: List[Dict[str, str]]) -> str:
    bullets = [format_location(loc["file"], loc["class"], loc["method"]) for loc in locations]
    return "\n".join([NO_PATCH_HEADING, ""] + bullets)


def read_locations(run_dir: str) -> Optional[List[Dict[str, str]]]:
    path = os.path.join(run_dir, FIX_LOCATIONS_FILE)
    if not os.path.isfile(path):
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        if not isinstance(raw, list):
            raise ValueError("expected a JSON array")
        return parse_locations(raw)
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unparseable %s: %s", path, e)
        return None


class ResultExtractor:

    def extract(self, output_root: str, task_id: str, model: str) -> RunResult:
        run_dirs = find_run_dirs(output_root, task_id)
        if not run_dirs:
            error = SetupError("no output found")
            logger.error("No run directory for task %s under %s", task_id, output_root)
            return RunResult(ok=False, body=run_failed_message(), diagnostic=error.diagnostic(), model=model)

        run_dir = os.path.join(output_root, run_dirs[-1])
        if len(run_dirs) > 1:
            logger.info("Task %s has %d run directories, using latest: %s",
                        task_id, len(run_dirs), run_dirs[-1])

        patch_path = os.path.join(run_dir, FINAL_PATCH_FILE)
        if os.path.isfile(patch_path):
            try:
                patch = read_patch(patch_path)
            except OSError as e:
                error = PatchGenError(f"could not read {FINAL_PATCH_FILE}: {e}")
                logger.error("Task %s: %s", task_id, error)
                return RunResult(ok=False, body=run_failed_message(), diagnostic=error.diagnostic(), model=model)
            cost, input_tokens, output_tokens = read_cost(run_dir)
            logger.info("Patch found for task %s (%d bytes, cost=%s)", task_id, len(patch), cost)
            return RunResult(
                ok=True,
                body=wrap_patch(patch),
                model=model,
                cost=cost,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
            )

        locations = read_locations(run_dir)
        if locations is not None:
            logger.info("No patch for task %s, %d explored locations", task_id, len(locations))
            return RunResult(ok=True, body=render_locations(locations), model=model)

        error = PatchGenError("no patch and no locations found")
        logger.error("Task %s: %s in %s", task_id, error, run_dir)
        return RunResult(ok=False, body=run_failed_message(), diagnostic=error.diagnostic(), model=model)
