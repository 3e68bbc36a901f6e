"""
Conversation Patch Locator
==========================
Finds the latest machine-generated patch in an issue conversation.

Rules:
    - Only comments authored by a bot AND starting with SUCCESS_PREFIX count.
    - Last patch wins, even if a later non-patch bot comment exists.
    - The patch is the text strictly between the first ```diff opener and
      the next ``` closer. Leading whitespace is trimmed and the single
      newline before the closer is dropped. Everything else is kept
      verbatim, patches are whitespace-sensitive.

Nothing here is cached; the conversation is re-read on every publish.
"""
import logging
from typing import Iterable

from patchbot.core.errors import MalformedPatch, NoPatchAvailable
from patchbot.core.output_formatter import FENCE, PATCH_FENCE_OPEN, SUCCESS_PREFIX
from patchbot.models.conversation import Comment

logger = logging.getLogger(__name__)


def find_latest_patch_comment(comments: Iterable[Comment]) -> str:
    latest = ""
    for comment in comments:
        if comment.is_bot and comment.body.startswith(SUCCESS_PREFIX):
            latest = comment.body
    if not latest:
        raise NoPatchAvailable("no bot comment carrying a patch")
    return latest


def extract_patch(body: str) -> str:
    start = body.find(PATCH_FENCE_OPEN)
    if start == -1:
        raise MalformedPatch("no ```diff block")
    content_start = start + len(PATCH_FENCE_OPEN)
    end = body.find(FENCE, content_start)
    if end == -1:
        raise MalformedPatch("```diff block is not closed")
    patch = body[content_start:end].lstrip()
    # newline before the closing fence
    if patch.endswith("\n"):
        patch = patch[:-1]
    return patch


def locate_patch(comments: Iterable[Comment]) -> str:
    patch = extract_patch(find_latest_patch_comment(comments))
    logger.info("Located patch in conversation (%d bytes)", len(patch))
    return patch
