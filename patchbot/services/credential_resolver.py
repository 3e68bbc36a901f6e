"""
Credential Resolver
===================
Decides, per invocation, which model is used and whether its provider key
is available.

Sources:
    - Action (single-tenant): the process environment, read at call time.
    - App (multi-tenant): a repository-scoped variable read supplied by the
      caller as ``lookup(variable_name) -> Optional[str]``.

Guarantees:
    - Read-only. Nothing is cached across invocations, since a repository
      may rotate its key between runs.
    - Fails before any execution backend is touched.

Engine environment:
    ``ResolvedCredentials.engine_env()`` names EVERY known provider's engine
    variable. The selected provider gets its key, every other provider gets
    an empty string. Backends must let these values override the host
    environment so a stale host key never leaks into a run.
"""
import logging
import os
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Optional

from patchbot.core.constants import ExecutionMode
from patchbot.core.errors import MissingCredential, NoCredentialConfigured, UnknownModel
from patchbot.core.model_catalog import PROVIDERS, ModelSpec, Provider, get_model

logger = logging.getLogger(__name__)

VariableLookup = Callable[[str], Awaitable[Optional[str]]]


@dataclass(frozen=True)
class ResolvedCredentials:
    model: ModelSpec
    secret: str = field(repr=False)

    @property
    def provider(self) -> Provider:
        return self.model.provider

    def engine_env(self) -> Dict[str, str]:
        env = {p.engine_var: "" for p in PROVIDERS.values()}
        env[self.provider.engine_var] = self.secret
        return env


class CredentialResolver:
    """
    Resolves model + provider key for one invocation.

    ``environ`` defaults to ``os.environ`` and is only injectable for tests.
    """

    def __init__(self, environ: Optional[Dict[str, str]] = None) -> None:
        self._environ = environ

    def _env(self) -> Dict[str, str]:
        return os.environ if self._environ is None else self._environ

    async def resolve(
        self,
        model_name: str,
        mode: ExecutionMode,
        lookup: Optional[VariableLookup] = None,
    ) -> ResolvedCredentials:
        if not model_name:
            raise NoCredentialConfigured("no model requested")

        model = get_model(model_name)
        if model is None:
            raise UnknownModel(model_name)

        provider = model.provider
        if mode == ExecutionMode.APP:
            if lookup is None:
                raise NoCredentialConfigured("no repository variable lookup available")
            secret = await lookup(provider.repo_variable) or ""
            source = f"repository variable {provider.repo_variable}"
        else:
            secret = self._env().get(provider.env_var, "")
            source = f"environment variable {provider.env_var}"

        if not secret.strip():
            logger.warning("Credential for provider '%s' not found in %s", provider.name, source)
            raise MissingCredential(provider.name)

        logger.info("Resolved credential for model %s (provider=%s) from %s",
                    model.name, provider.name, source)
        return ResolvedCredentials(model=model, secret=secret.strip())
