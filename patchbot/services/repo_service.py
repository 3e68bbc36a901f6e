"""
Repo Service
============
Manages git workspaces on the host machine for the publish flow.

Philosophy:
    - Multi-tenant (App): clone into a fresh, uniquely named temporary
      directory per publish and delete it afterwards, success or failure.
    - Single-tenant (Action): reuse the pre-checked-out TARGET_REPO_PATH.
      It is never deleted.
"""
import base64
import logging
import os
import shutil
import subprocess
import tempfile
from typing import List

from patchbot.core.errors import WorkspaceError

logger = logging.getLogger(__name__)


def get_repo_name(repo_url: str) -> str:
    """Extract repository name from URL."""
    # Handle git@github.com:org/repo.git or https://github.com/org/repo
    name = repo_url.rstrip("/").split("/")[-1]
    if name.endswith(".git"):
        name = name[:-4]
    return name


def authenticated_url(repo_url: str, token: str) -> str:
    """Embed an installation token in an https clone URL."""
    if token and repo_url.startswith("https://"):
        return repo_url.replace("https://", f"https://x-access-token:{token}@", 1)
    return repo_url


def redact(text: str, token: str) -> str:
    return text.replace(token, "***") if token else text


def auth_header_args(token: str) -> List[str]:
    """
    One-shot git config that authenticates a single command.

    ``git -c`` settings apply to that invocation only, so the token never
    reaches the clone's remote URL or its .git/config.
    """
    if not token:
        return []
    credentials = base64.b64encode(f"x-access-token:{token}".encode("utf-8")).decode("ascii")
    return ["-c", f"http.extraHeader=Authorization: Basic {credentials}"]


def clone_to_temp(repo_url: str, token: str = "") -> str:
    """
    Clone a repository into a new temporary directory.

    The origin remote keeps the plain URL. Pushing with the token goes
    through a temporary remote (see GitPublisher).

    Returns
    -------
    str
        Absolute path to the clone. The caller owns it and must call
        ``remove_workspace`` when done.
    """
    dest_path = tempfile.mkdtemp(prefix=f"patchbot-{get_repo_name(repo_url)}-")
    logger.info("Cloning %s into %s", repo_url, dest_path)

    try:
        subprocess.run(
            ["git", *auth_header_args(token), "clone", repo_url, dest_path],
            check=True,
            capture_output=True,
            text=True
        )
    except subprocess.CalledProcessError as e:
        remove_workspace(dest_path)
        stderr = redact(e.stderr or "", token)
        logger.error("Failed to clone repository: %s", stderr)
        raise WorkspaceError(f"cloning {repo_url} failed: {stderr.strip()}") from e
    except OSError as e:
        remove_workspace(dest_path)
        raise WorkspaceError(f"cloning {repo_url} failed: {e}") from e

    logger.info("Successfully cloned repository to %s", dest_path)
    return dest_path


def existing_workspace(path: str) -> str:
    """Validate a pre-checked-out repository path."""
    if not path or not os.path.isdir(os.path.join(path, ".git")):
        raise WorkspaceError(f"target repository path is not a git checkout: '{path}'")
    return os.path.abspath(path)


def remove_workspace(path: str) -> None:
    if os.path.exists(path):
        logger.info("Removing workspace %s", path)
        shutil.rmtree(path, ignore_errors=True)
