"""
Configuration
=============
Loads environment variables from .env file using python-dotenv.

Environment Variables:
    OPENAI_API_KEY       — OpenAI key (single-tenant / Action mode)
    ANTHROPIC_API_KEY    — Anthropic key (single-tenant / Action mode)
    TARGET_REPO_PATH     — Pre-checked-out target repository (Action mode)
    ACR_CODE_DIR         — Directory holding the engine code (local backend)
    ACR_PYTHON           — Interpreter used to run the engine locally
    ACR_OUTPUT_ROOT      — Host directory that receives engine output
    ACR_DOCKER_IMAGE     — Engine container image (App mode)
    EXECUTION_MODE       — auto | app | action (default: auto)
    SERIALIZE_PER_TASK   — Serialize runs sharing a task id (default: false)
    GITHUB_TOKEN         — Token for the hosting platform REST API
    GITHUB_API_URL       — REST API base URL (default: https://api.github.com)
    COMMIT_AUTHOR_NAME   — Identity used for publish commits
    COMMIT_AUTHOR_EMAIL
    BOT_MENTION          — Mention that addresses the bot (default: @acr-bot)

Provider keys are not captured here: the credential resolver
reads os.environ at call time so a changed key is picked up on the next run.

Per-task serialization:
    Two runs for the same task id write into the same output namespace.
    Without serialization the run directory with the latest timestamp wins.
    SERIALIZE_PER_TASK=true holds a per-task lock across dispatch and
    extraction instead.
"""
import os
from dotenv import load_dotenv

load_dotenv()

_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

TARGET_REPO_PATH = os.getenv("TARGET_REPO_PATH", "")
ACR_CODE_DIR = os.getenv("ACR_CODE_DIR", "")
ACR_PYTHON = os.getenv("ACR_PYTHON", "python")
ACR_OUTPUT_ROOT = os.getenv("ACR_OUTPUT_ROOT", os.path.join(_PROJECT_ROOT, "output"))
ACR_DOCKER_IMAGE = os.getenv("ACR_DOCKER_IMAGE", "autocoderover/acr:v1")

# Fixed paths inside the engine image
CONTAINER_CODE_DIR = "/opt/auto-code-rover"
CONTAINER_OUTPUT_DIR = "/opt/auto-code-rover/output"

EXECUTION_MODE = os.getenv("EXECUTION_MODE", "auto").lower()
SERIALIZE_PER_TASK = os.getenv("SERIALIZE_PER_TASK", "false").lower() == "true"

GITHUB_TOKEN = os.getenv("GITHUB_TOKEN", "")
GITHUB_API_URL = os.getenv("GITHUB_API_URL", "https://api.github.com").rstrip("/")

COMMIT_AUTHOR_NAME = os.getenv("COMMIT_AUTHOR_NAME", "acr-bot")
COMMIT_AUTHOR_EMAIL = os.getenv("COMMIT_AUTHOR_EMAIL", "acr-bot@users.noreply.github.com")

BOT_MENTION = os.getenv("BOT_MENTION", "@acr-bot")
