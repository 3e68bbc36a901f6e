"""
Constants
Centralised storage for execution modes, git naming rules and output file names.
"""
from enum import Enum


class ExecutionMode(str, Enum):
    """Where the engine runs and where the target repository lives."""
    ACTION = "GitHub Action"   # single-tenant: local process, fixed checkout
    APP = "GitHub App"         # multi-tenant: container, fresh clone


# Engine output layout
FINAL_PATCH_FILE = "final_patch.diff"
FIX_LOCATIONS_FILE = "fix_locations.json"
COST_FILE = "cost.json"
ISSUE_TEXT_FILE = "issue.txt"

# Git naming
CONTAINER_PREFIX = "acr"
BRANCH_PREFIX = "acr-bot-patch"
PUSH_REMOTE_NAME = "acr-push"
PR_INSTRUCTION = "open-pr"
