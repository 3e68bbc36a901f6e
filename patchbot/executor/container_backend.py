"""
Container Backend
=================
Runs the engine inside a Docker container (multi-tenant / App mode).

DOCKER STRATEGY:
    - One container per invocation, named ``acr-{task_id}``.
    - A stale container with the same name is removed before launch, so at
      most one named container exists per task.
    - Host ``{root}/{task_id}`` is mounted at the image's fixed output path.
    - Provider keys are passed under the names the ENGINE reads
      (e.g. OPENAI_KEY), not the names this service reads.
    - Container removed after execution regardless of outcome. Cleanup
      failures are logged, never raised.

CLIENT OWNERSHIP:
    The docker client is created by the composition root (main.py lifespan)
    and passed in. This module never calls docker.from_env().

The Docker SDK is blocking; ``run`` moves the whole launch → stream → wait
sequence onto a worker thread so other triggers keep being served.
"""
import asyncio
import logging
from typing import Dict, List, Optional

from docker.errors import APIError, DockerException, ImageNotFound, NotFound

from patchbot.core.config import ACR_DOCKER_IMAGE, ACR_OUTPUT_ROOT, CONTAINER_CODE_DIR, CONTAINER_OUTPUT_DIR
from patchbot.core.errors import SetupError
from patchbot.core.model_catalog import ModelSpec
from patchbot.executor.base import EngineOutputForwarder, EngineSource, ExecutionOutcome, prepare_output_dir
from patchbot.services.credential_resolver import ResolvedCredentials
from patchbot.utils.task_identity import container_name

logger = logging.getLogger(__name__)


def build_container_command(
    task_id: str,
    engine_model: str,
    clone_url: str,
    issue_url: str,
) -> List[str]:
    """Engine command line for github-issue mode."""
    return [
        "python",
        "app/main.py",
        "github-issue",
        "--output-dir", f"{CONTAINER_OUTPUT_DIR}/{task_id}",
        "--setup-dir", "setup",
        "--model", engine_model,
        "--task-id", task_id,
        "--clone-link", clone_url,
        "--issue-link", issue_url,
    ]


class ContainerBackend:

    def __init__(
        self,
        client,
        image: str = ACR_DOCKER_IMAGE,
        output_root: str = ACR_OUTPUT_ROOT,
    ) -> None:
        self.client = client
        self.image = image
        self.output_root = output_root

    def image_available(self) -> bool:
        """True if the engine image is present locally."""
        if self.client is None:
            return False
        try:
            self.client.images.get(self.image)
            return True
        except ImageNotFound:
            logger.info("Engine image %s not present locally", self.image)
            return False
        except DockerException as e:
            logger.warning("Could not query Docker for image %s: %s", self.image, e)
            return False

    async def run(
        self,
        task_id: str,
        model: ModelSpec,
        credentials: ResolvedCredentials,
        source: EngineSource,
        issue_text: Optional[str] = None,
        issue_url: Optional[str] = None,
    ) -> ExecutionOutcome:
        if not source.clone_url:
            raise SetupError("container backend needs a clone URL")
        if self.client is None:
            raise SetupError("no Docker client available")

        task_dir = prepare_output_dir(self.output_root, task_id)
        command = build_container_command(task_id, model.engine_model, source.clone_url, issue_url or "")
        environment = {**credentials.engine_env(), "PYTHONPATH": "."}

        return await asyncio.to_thread(
            self._run_blocking, task_id, task_dir, command, environment,
        )

    # ------------------------------------------------------------------
    # Blocking part (worker thread)
    # ------------------------------------------------------------------
    def _remove_stale(self, name: str) -> None:
        try:
            stale = self.client.containers.get(name)
        except NotFound:
            return
        except APIError as e:
            logger.warning("Could not look up container %s: %s", name, e)
            return
        logger.info("Removing stale container %s", name)
        try:
            stale.remove(force=True)
        except APIError:
            logger.warning("Failed to remove stale container %s", name, exc_info=True)

    def _run_blocking(
        self,
        task_id: str,
        task_dir: str,
        command: List[str],
        environment: Dict[str, str],
    ) -> ExecutionOutcome:
        name = container_name(task_id)
        self._remove_stale(name)

        logger.info("Starting container | name=%s | image=%s | output=%s", name, self.image, task_dir)
        try:
            container = self.client.containers.run(
                image=self.image,
                command=command,
                name=name,
                volumes={
                    task_dir: {"bind": f"{CONTAINER_OUTPUT_DIR}/{task_id}", "mode": "rw"},
                },
                environment=environment,
                working_dir=CONTAINER_CODE_DIR,
                labels={"project": "patchbot", "task_id": task_id},
                detach=True,
            )
        except ImageNotFound as e:
            raise SetupError(f"Docker image '{self.image}' not found") from e
        except APIError as e:
            raise SetupError(f"could not start container {name}: {e}") from e

        try:
            _stream_logs(container)
            wait_result = container.wait()
            exit_code = wait_result.get("StatusCode", -1)
            if exit_code != 0:
                logger.warning("Container %s exited with status %d", name, exit_code)
            else:
                logger.info("Container %s finished", name)
            return ExecutionOutcome(
                ran_to_completion=True,
                exit_code=exit_code,
                exit_info=f"container exited with status {exit_code}",
            )
        except DockerException as e:
            logger.error("Container %s failed while running: %s", name, e)
            return ExecutionOutcome(ran_to_completion=False, exit_info=f"Docker error: {e}")
        finally:
            try:
                container.remove(force=True)
                logger.info("Container %s removed", name)
            except Exception:
                logger.warning("Failed to remove container %s", name, exc_info=True)


def _stream_logs(container) -> None:
    """Forward container output to the engine logger line by line as it arrives."""
    output = EngineOutputForwarder()
    for chunk in container.logs(stream=True, follow=True, stdout=True, stderr=True):
        output.feed(chunk)
    output.close()
