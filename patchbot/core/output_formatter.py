"""
Output Formatter
================
THE SINGLE SOURCE OF TRUTH for every user-facing string the bot posts.

STRICT DETERMINISM CONTRACT:
  - This module NEVER reads environment variables.
  - Given the same inputs, it ALWAYS returns the exact same output string.

PARSE-BACK CONTRACT:
  The publish flow finds earlier patches by looking for comments that start
  with SUCCESS_PREFIX and contain a block opened with PATCH_FENCE_OPEN.
  Changing either constant orphans every patch already posted.
"""
from typing import Optional

from patchbot.core.constants import PR_INSTRUCTION
from patchbot.core.model_catalog import DEFAULT_MODEL


# ---------------------------------------------------------------------------
# Markup constants
# ---------------------------------------------------------------------------
SUCCESS_PREFIX = "AutoCodeRover has generated a patch for this issue."
FENCE = "```"
PATCH_FENCE_OPEN = FENCE + "diff"
NO_PATCH_HEADING = (
    "AutoCodeRover did not produce a patch, but explored the following locations:"
)


def wrap_patch(patch: str) -> str:
    """
    Fence a raw diff unless it is already fenced.

    The closing fence always sits on its own line after one added newline.
    The locator drops exactly that newline, so it reads back the diff
    that was wrapped, with or without a trailing newline of its own.
    """
    if patch.startswith(FENCE):
        return patch
    return f"{PATCH_FENCE_OPEN}\n{patch}\n{FENCE}"


def format_location(file: str, cls: str, method: str) -> str:
    parts = [f"file `{file}`"]
    if cls:
        parts.append(f"class `{cls}`")
    if method:
        parts.append(f"method `{method}`")
    return "- " + ", ".join(parts)


def format_cost(cost: Optional[float]) -> str:
    if cost is None:
        return ""
    return f"This run costs {cost:.2f} USD."


def format_result_comment(ok: bool, body: str, cost: Optional[float] = None) -> str:
    """
    Build the issue comment for one orchestration run.

    Success comments carry SUCCESS_PREFIX so the publish flow can find them.
    Failure comments are posted as-is.
    """
    if not ok:
        return body
    comment = f"{SUCCESS_PREFIX}\n{body}"
    cost_line = format_cost(cost)
    if cost_line:
        comment += f"\n\n---\n\n{cost_line}"
    return comment


# ---------------------------------------------------------------------------
# Remediation / failure messages
# ---------------------------------------------------------------------------
def no_credential_message() -> str:
    return "No API key is set up. Please set up either OpenAI or Anthropic API key."


def unknown_model_message(model_name: str) -> str:
    return f"Model `{model_name}` is not supported."


def missing_credential_message(provider: str) -> str:
    label = {"openai": "OpenAI", "anthropic": "Anthropic"}.get(provider, provider)
    return f"{label} API key is missing. Please set it up in the repository."


def run_failed_message() -> str:
    return (
        "AutoCodeRover could not generate a patch for this issue. "
        "You can retry by mentioning the bot again."
    )


def no_patch_message(mention: str) -> str:
    return (
        "acr-bot has not generated a patch for this issue yet. "
        f"Before opening a PR, please generate a patch with {mention} <model-name>."
    )


def malformed_patch_message(mention: str) -> str:
    return (
        "The patch format is not correct. "
        f"Please generate a new patch with {mention} <model-name>."
    )


def publish_failed_message(error: str) -> str:
    return f"Failed to open a pull request for the latest patch:\n\n{FENCE}\n{error}\n{FENCE}"


def pull_request_created_message(url: str) -> str:
    return f"Opened a pull request with the latest patch: {url}"


def help_message(mention: str) -> str:
    return (
        f"The instruction should be in the format of `{mention} <...>`.\n"
        "If you would like to generate a patch, please provide a model name.\n"
        f"For example, `{mention} {DEFAULT_MODEL}`.\n"
        f"You can also just write {mention}, and I will use a default OpenAI model ({DEFAULT_MODEL}).\n"
        f"If you would like to open a PR, please provide the instruction `{PR_INSTRUCTION}`.\n"
        f"For example, `{mention} {PR_INSTRUCTION}`."
    )


def pull_request_title(issue_number: int, issue_title: str = "") -> str:
    title = f"Patch for issue #{issue_number}"
    if issue_title:
        title += f" - {issue_title}"
    return title


def pull_request_body(issue_number: int) -> str:
    return (
        f"This PR contains a patch for issue #{issue_number}. "
        "Patch is created by AutoCodeRover."
    )


def commit_message(issue_number: int) -> str:
    return f"Patch for issue #{issue_number}"
