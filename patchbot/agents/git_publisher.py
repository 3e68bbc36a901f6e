"""
Git Publisher
=============
Turns a located patch into a pushed branch and a pull request.

Steps (each depends on the previous one succeeding):
    1. Workspace: fresh temporary clone (App) or TARGET_REPO_PATH (Action).
    2. Commit identity: fixed name/email passed through the git process
       environment of the commit call only. Never written to git config.
    3. Base branch: the branch checked out when we start.
    4. New branch: acr-bot-patch-{issue}-{YYYYmmdd-HHMMSS}.
    5. Patch written to a temp file, ``git apply``'d, temp file removed.
    6. Stage, commit, push. App mode pushes through a temporary remote
       whose URL embeds the installation token; the remote is removed
       right after the push. Action mode pushes to origin.
    7. Pull request from the new branch to the base branch.
    8. Ephemeral workspace removed, on success and on failure.
    9. Action mode: any failure after step 4 resets the checkout, returns
       to the base branch and deletes the new branch. A detached or
       unborn HEAD is rejected before any branch is created.

Every git call runs with an explicit ``cwd``. The process working
directory is never changed.
"""
import asyncio
import logging
import os
import subprocess
import tempfile
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from patchbot.core.config import COMMIT_AUTHOR_EMAIL, COMMIT_AUTHOR_NAME, TARGET_REPO_PATH
from patchbot.core.constants import BRANCH_PREFIX, PUSH_REMOTE_NAME, ExecutionMode
from patchbot.core.errors import PatchApplyFailure, PublishError, PublishTransportFailure
from patchbot.core.output_formatter import commit_message, pull_request_body, pull_request_title
from patchbot.models.conversation import PublishTarget, PullRequestRef
from patchbot.services.github_client import GitHubClient
from patchbot.services.repo_service import (
    authenticated_url,
    clone_to_temp,
    existing_workspace,
    redact,
    remove_workspace,
)

logger = logging.getLogger(__name__)


def generate_branch_name(issue_number: int, now: datetime) -> str:
    return f"{BRANCH_PREFIX}-{issue_number}-{now.strftime('%Y%m%d-%H%M%S')}"


class GitPublisher:

    def __init__(
        self,
        github: GitHubClient,
        target_repo_path: str = TARGET_REPO_PATH,
        author_name: str = COMMIT_AUTHOR_NAME,
        author_email: str = COMMIT_AUTHOR_EMAIL,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.github = github
        self.target_repo_path = target_repo_path
        self.author_name = author_name
        self.author_email = author_email
        self.clock = clock

    async def publish(
        self,
        patch_text: str,
        issue_number: int,
        target: PublishTarget,
        issue_title: str = "",
    ) -> PullRequestRef:
        ephemeral = target.mode == ExecutionMode.APP
        workspace: Optional[str] = None
        try:
            workspace = await asyncio.to_thread(self._obtain_workspace, target)
            base, branch = await asyncio.to_thread(self._create_branch, workspace, issue_number)
            try:
                await asyncio.to_thread(
                    self._commit_and_push, workspace, patch_text, issue_number, branch, target,
                )
                return await self.github.for_token(target.push_token).create_pull_request(
                    target.repo_full_name,
                    title=pull_request_title(issue_number, issue_title),
                    body=pull_request_body(issue_number),
                    head=branch,
                    base=base,
                )
            except PublishError:
                await asyncio.to_thread(self._restore_base, workspace, base, branch, target)
                raise
        finally:
            if ephemeral and workspace:
                remove_workspace(workspace)

    # ------------------------------------------------------------------
    # Blocking git steps (worker thread)
    # ------------------------------------------------------------------
    def _obtain_workspace(self, target: PublishTarget) -> str:
        if target.mode == ExecutionMode.APP:
            return clone_to_temp(target.clone_url, target.push_token or "")
        return existing_workspace(self.target_repo_path)

    def _identity_env(self) -> Dict[str, str]:
        return {
            **os.environ,
            "GIT_AUTHOR_NAME": self.author_name,
            "GIT_AUTHOR_EMAIL": self.author_email,
            "GIT_COMMITTER_NAME": self.author_name,
            "GIT_COMMITTER_EMAIL": self.author_email,
        }

    def _git(
        self,
        workspace: str,
        args: List[str],
        env: Optional[Dict[str, str]] = None,
    ) -> subprocess.CompletedProcess:
        return subprocess.run(
            ["git", *args],
            cwd=workspace,
            env=env,
            check=True,
            capture_output=True,
            text=True,
        )

    def _current_branch(self, workspace: str) -> str:
        try:
            base = self._git(workspace, ["rev-parse", "--abbrev-ref", "HEAD"]).stdout.strip()
        except subprocess.CalledProcessError as e:
            raise PublishTransportFailure(
                f"could not determine the checked-out branch in {workspace}: {(e.stderr or '').strip()}"
            ) from e
        if not base or base == "HEAD":
            raise PublishTransportFailure(f"{workspace} is not on a branch (detached HEAD)")
        return base

    def _create_branch(self, workspace: str, issue_number: int) -> Tuple[str, str]:
        base = self._current_branch(workspace)
        branch = generate_branch_name(issue_number, self.clock())
        try:
            self._git(workspace, ["checkout", "-b", branch])
        except subprocess.CalledProcessError as e:
            raise PublishTransportFailure(f"could not create branch {branch}: {(e.stderr or '').strip()}") from e
        logger.info("Checked out %s (base %s) in %s", branch, base, workspace)
        return base, branch

    def _commit_and_push(
        self,
        workspace: str,
        patch_text: str,
        issue_number: int,
        branch: str,
        target: PublishTarget,
    ) -> None:
        self._apply_patch(workspace, patch_text)
        try:
            self._git(workspace, ["add", "-A"])
            self._git(
                workspace,
                ["commit", "-m", commit_message(issue_number)],
                env=self._identity_env(),
            )
        except subprocess.CalledProcessError as e:
            raise PublishTransportFailure(f"could not commit patch: {(e.stderr or '').strip()}") from e
        logger.info("Committed patch for issue #%d on %s", issue_number, branch)

        self._push(workspace, branch, target)

    def _apply_patch(self, workspace: str, patch_text: str) -> None:
        if not patch_text.endswith("\n"):
            patch_text += "\n"
        with tempfile.NamedTemporaryFile("w", suffix=".diff", delete=False, encoding="utf-8") as f:
            f.write(patch_text)
            patch_file = f.name
        try:
            self._git(workspace, ["apply", patch_file])
        except subprocess.CalledProcessError as e:
            logger.error("git apply failed: %s", e.stderr)
            raise PatchApplyFailure((e.stderr or "").strip() or "git apply failed") from e
        finally:
            os.remove(patch_file)

    def _push(self, workspace: str, branch: str, target: PublishTarget) -> None:
        token = target.push_token or ""
        remote = PUSH_REMOTE_NAME if target.mode == ExecutionMode.APP else "origin"
        try:
            if remote == PUSH_REMOTE_NAME:
                self._git(workspace, ["remote", "add", remote, authenticated_url(target.clone_url, token)])
            self._git(workspace, ["push", remote, branch])
            logger.info("Pushed %s to %s", branch, remote)
        except subprocess.CalledProcessError as e:
            stderr = redact(e.stderr or "", token)
            logger.error("Push failed: %s", stderr)
            raise PublishTransportFailure(f"push to {remote} failed: {stderr.strip()}") from e
        finally:
            if remote == PUSH_REMOTE_NAME:
                try:
                    self._git(workspace, ["remote", "remove", remote])
                except subprocess.CalledProcessError:
                    logger.warning("Failed to remove remote %s", remote, exc_info=True)

    def _restore_base(self, workspace: str, base: str, branch: str, target: PublishTarget) -> None:
        """Put a persistent checkout back on its base branch after a failed publish."""
        if target.mode == ExecutionMode.APP:
            return
        try:
            self._git(workspace, ["reset", "--hard"])
            self._git(workspace, ["checkout", base])
            self._git(workspace, ["branch", "-D", branch])
        except subprocess.CalledProcessError:
            logger.warning("Could not restore %s to %s", workspace, base, exc_info=True)
