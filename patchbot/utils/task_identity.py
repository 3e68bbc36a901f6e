"""
Task identity helpers.

A task id names one (repository, issue) pair everywhere on disk and in
Docker. Retries of the same task reuse the id on purpose: the engine writes
a new timestamped run directory under the same namespace and the latest one
wins.
"""
from patchbot.core.constants import CONTAINER_PREFIX

_SEPARATOR_REPLACEMENT = "__"


def task_id(repo_full_name: str, issue_number: int) -> str:
    """
    Build the task id for a repository / issue pair.

    >>> task_id("octo/hello-world", 42)
    'octo__hello-world-42'
    """
    safe_name = repo_full_name.replace("\\", "/").replace("/", _SEPARATOR_REPLACEMENT)
    return f"{safe_name}-{issue_number}"


def container_name(tid: str) -> str:
    return f"{CONTAINER_PREFIX}-{tid}"
