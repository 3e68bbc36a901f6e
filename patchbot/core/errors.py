"""
Errors
======
Failure taxonomy for the orchestration and publish pipelines.

Every error carries a ``category`` used as the prefix of
``RunResult.diagnostic`` (e.g. ``"SetupError: no output found"``) so that
operators can triage runs without reading the logs.

Propagation rules:
    - CredentialError / ConversationError are turned into remediation
      messages by the orchestrator and PR agent. They never reach the caller.
    - SetupError / PatchGenError are reduced to RunResult(ok=False).
    - PublishError subclasses carry the underlying git / HTTP error text.
"""


class PatchBotError(Exception):
    category = "PatchBotError"

    def diagnostic(self) -> str:
        return f"{self.category}: {self}"


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------
class CredentialError(PatchBotError):
    category = "CredentialError"


class NoCredentialConfigured(CredentialError):
    category = "NoCredentialConfigured"


class UnknownModel(CredentialError):
    category = "UnknownModel"

    def __init__(self, model_name: str) -> None:
        super().__init__(f"unknown model '{model_name}'")
        self.model_name = model_name


class MissingCredential(CredentialError):
    category = "MissingCredential"

    def __init__(self, provider: str) -> None:
        super().__init__(f"no API key configured for provider '{provider}'")
        self.provider = provider


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------
class SetupError(PatchBotError):
    category = "SetupError"


class PatchGenError(PatchBotError):
    category = "PatchGenError"


# ---------------------------------------------------------------------------
# Conversation parsing (publish time)
# ---------------------------------------------------------------------------
class ConversationError(PatchBotError):
    category = "ConversationError"


class NoPatchAvailable(ConversationError):
    category = "NoPatchAvailable"


class MalformedPatch(ConversationError):
    category = "MalformedPatch"


# ---------------------------------------------------------------------------
# Publishing
# ---------------------------------------------------------------------------
class PublishError(PatchBotError):
    category = "PublishError"


class PatchApplyFailure(PublishError):
    category = "PatchApplyFailure"


class PublishTransportFailure(PublishError):
    category = "PublishTransportFailure"


class WorkspaceError(PublishTransportFailure):
    category = "WorkspaceError"
