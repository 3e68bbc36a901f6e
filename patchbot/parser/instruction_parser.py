"""
Instruction Parser
==================
Reads a bot mention out of an issue body or comment.

    "@acr-bot open-pr"            → open a pull request from the latest patch
    "@acr-bot <known model>"      → generate a patch with that model
    "@acr-bot <anything else>"    → invalid (caller replies with help text)
    "... @acr-bot ..."            → generate a patch with the default model
    no mention                    → not addressed to the bot
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from patchbot.core.constants import PR_INSTRUCTION
from patchbot.core.model_catalog import DEFAULT_MODEL, is_known_model


class InstructionKind(str, Enum):
    PATCH = "patch"
    PR = "pr"


@dataclass(frozen=True)
class Instruction:
    kind: InstructionKind
    model_name: str = ""


class InvalidInstruction(ValueError):
    """The bot was addressed with an instruction it does not understand."""


def mentions_bot(text: Optional[str], mention: str) -> bool:
    return bool(text) and mention in text


def parse_instruction(text: Optional[str], mention: str) -> Optional[Instruction]:
    """
    Returns None when the bot is not mentioned at all.
    Raises InvalidInstruction for "<mention> <unknown word>".
    """
    if not mentions_bot(text, mention):
        return None

    match = re.match(rf"^{re.escape(mention)}\s+([\w.-]+)$", text.strip())
    if match:
        word = match.group(1)
        if word == PR_INSTRUCTION:
            return Instruction(kind=InstructionKind.PR)
        if is_known_model(word):
            return Instruction(kind=InstructionKind.PATCH, model_name=word)
        raise InvalidInstruction(word)

    return Instruction(kind=InstructionKind.PATCH, model_name=DEFAULT_MODEL)
