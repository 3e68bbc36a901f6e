"""
Unit Tests — Local Process Backend
==================================
The engine process is replaced by a fake asyncio subprocess so the tests
can inspect the command line and environment it would have been given.
"""
import asyncio
import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from patchbot.core.errors import SetupError
from patchbot.core.model_catalog import MODELS
from patchbot.executor.base import EngineSource
from patchbot.executor.local_backend import LocalProcessBackend, build_engine_env
from patchbot.services.credential_resolver import ResolvedCredentials

TASK_ID = "octo__hello-world-42"
GPT = MODELS["gpt-4o-2024-08-06"]


class FakeStream:
    """Hands out the given chunks through StreamReader.read, then EOF."""

    def __init__(self, chunks):
        self._chunks = list(chunks)

    async def read(self, n=-1):
        if not self._chunks:
            return b""
        return self._chunks.pop(0)


def fake_process(chunks=(b"searching...\n",), exit_code=0):
    process = MagicMock()
    process.stdout = FakeStream(chunks)
    process.wait = AsyncMock(return_value=exit_code)
    process.returncode = exit_code
    return process


@pytest.fixture
def backend(tmp_path):
    code_dir = tmp_path / "acr"
    code_dir.mkdir()
    return LocalProcessBackend(code_dir=str(code_dir), python="python3", output_root=str(tmp_path / "out"))


@pytest.fixture
def credentials():
    return ResolvedCredentials(model=GPT, secret="sk-test")


def test_build_engine_env_overrides_host_values():
    host = {"OPENAI_KEY": "stale", "ANTHROPIC_API_KEY": "host-key", "PATH": "/bin"}
    env = build_engine_env(host, {"OPENAI_KEY": "sk-test", "ANTHROPIC_API_KEY": ""}, "/opt/acr")
    assert env["OPENAI_KEY"] == "sk-test"
    assert env["ANTHROPIC_API_KEY"] == ""
    assert env["PATH"] == "/bin"
    assert env["PYTHONPATH"] == "/opt/acr"
    # host mapping untouched
    assert host["OPENAI_KEY"] == "stale"


def test_run_passes_issue_through_file(backend, credentials, tmp_path):
    repo = tmp_path / "repo"
    repo.mkdir()

    async def run_test():
        with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=fake_process())) as spawn:
            outcome = await backend.run(
                TASK_ID, GPT, credentials, EngineSource(local_path=str(repo)),
                issue_text="fix null pointer\nin parser",
            )
        return outcome, spawn

    outcome, spawn = asyncio.run(run_test())

    issue_file = os.path.join(str(tmp_path / "out"), TASK_ID, "issue.txt")
    with open(issue_file, encoding="utf-8") as f:
        assert f.read() == "fix null pointer\nin parser"

    command = list(spawn.call_args.args)
    assert command[:3] == ["python3", "app/main.py", "local-issue"]
    assert command[command.index("--issue-msg") + 1] == issue_file
    assert command[command.index("--task-id") + 1] == TASK_ID
    assert command[command.index("--model") + 1] == "gpt-4o-2024-08-06"
    assert command[command.index("--local-repo") + 1] == str(repo)
    assert "fix null pointer\nin parser" not in command

    kwargs = spawn.call_args.kwargs
    assert kwargs["cwd"] == backend.code_dir
    assert outcome.ran_to_completion
    assert outcome.exit_code == 0


def test_injected_credentials_win_over_host(backend, credentials, tmp_path):
    async def run_test():
        with patch.dict(os.environ, {"OPENAI_KEY": "stale", "ANTHROPIC_API_KEY": "host-key"}), \
             patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=fake_process())) as spawn:
            await backend.run(TASK_ID, GPT, credentials, EngineSource(local_path=str(tmp_path)))
        return spawn

    spawn = asyncio.run(run_test())
    env = spawn.call_args.kwargs["env"]
    assert env["OPENAI_KEY"] == "sk-test"
    assert env["ANTHROPIC_API_KEY"] == ""
    assert env["PYTHONPATH"] == backend.code_dir


def test_nonzero_exit_is_returned_not_raised(backend, credentials, tmp_path):
    async def run_test():
        with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=fake_process(exit_code=1))):
            return await backend.run(TASK_ID, GPT, credentials, EngineSource(local_path=str(tmp_path)))

    outcome = asyncio.run(run_test())
    assert outcome.ran_to_completion
    assert outcome.exit_code == 1


def test_engine_output_goes_to_engine_logger(backend, credentials, tmp_path, caplog):
    lines = [b"Loading repo\n", b"Writing patch\r\n"]

    async def run_test():
        with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=fake_process(lines))):
            await backend.run(TASK_ID, GPT, credentials, EngineSource(local_path=str(tmp_path)))

    with caplog.at_level("INFO", logger="patchbot.engine"):
        asyncio.run(run_test())
    messages = [r.getMessage() for r in caplog.records if r.name == "patchbot.engine"]
    assert messages == ["Loading repo", "Writing patch"]


def test_overlong_line_does_not_stop_the_run(backend, credentials, tmp_path, caplog):
    chunks = [b"x" * 65536] * 31 + [b"\nok\n"]

    async def run_test():
        with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=fake_process(chunks))):
            return await backend.run(TASK_ID, GPT, credentials, EngineSource(local_path=str(tmp_path)))

    with caplog.at_level("INFO", logger="patchbot.engine"):
        outcome = asyncio.run(run_test())

    assert outcome.ran_to_completion
    messages = [r.getMessage() for r in caplog.records if r.name == "patchbot.engine"]
    assert messages[-1] == "ok"
    assert sum(len(m) for m in messages[:-1]) == 31 * 65536
    assert max(len(m) for m in messages) == 1024 * 1024


def test_split_utf8_sequence_is_decoded(backend, credentials, tmp_path, caplog):
    chunks = [b"caf\xc3", b"\xa9 ready\n"]

    async def run_test():
        with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=fake_process(chunks))):
            await backend.run(TASK_ID, GPT, credentials, EngineSource(local_path=str(tmp_path)))

    with caplog.at_level("INFO", logger="patchbot.engine"):
        asyncio.run(run_test())
    messages = [r.getMessage() for r in caplog.records if r.name == "patchbot.engine"]
    assert messages == ["caf\u00e9 ready"]


def test_process_is_reaped_when_reading_fails(backend, credentials, tmp_path):
    process = fake_process()
    process.returncode = None
    process.stdout.read = AsyncMock(side_effect=OSError("pipe closed"))

    async def run_test():
        with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=process)):
            await backend.run(TASK_ID, GPT, credentials, EngineSource(local_path=str(tmp_path)))

    with pytest.raises(OSError):
        asyncio.run(run_test())
    process.kill.assert_called_once()
    process.wait.assert_awaited()


def test_missing_code_dir_is_setup_error(tmp_path, credentials):
    backend = LocalProcessBackend(code_dir=str(tmp_path / "missing"), output_root=str(tmp_path / "out"))
    with pytest.raises(SetupError):
        asyncio.run(backend.run(TASK_ID, GPT, credentials, EngineSource(local_path=str(tmp_path))))


def test_spawn_failure_is_setup_error(backend, credentials, tmp_path):
    async def run_test():
        with patch("asyncio.create_subprocess_exec", new=AsyncMock(side_effect=FileNotFoundError("python3"))):
            await backend.run(TASK_ID, GPT, credentials, EngineSource(local_path=str(tmp_path)))

    with pytest.raises(SetupError):
        asyncio.run(run_test())


def test_clone_url_source_rejected(backend, credentials):
    with pytest.raises(SetupError):
        asyncio.run(backend.run(TASK_ID, GPT, credentials, EngineSource(clone_url="https://github.com/o/r.git")))


def test_engine_source_needs_exactly_one_field():
    with pytest.raises(ValueError):
        EngineSource()
    with pytest.raises(ValueError):
        EngineSource(clone_url="https://github.com/o/r.git", local_path="/tmp/r")
