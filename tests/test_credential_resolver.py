"""
Unit Tests — Credential Resolver
=================================
Action mode reads the (injected) environment, App mode awaits the
repository variable lookup. Nothing touches the real os.environ.
"""
import asyncio
import pytest
from unittest.mock import AsyncMock

from patchbot.core.constants import ExecutionMode
from patchbot.core.errors import MissingCredential, NoCredentialConfigured, UnknownModel
from patchbot.services.credential_resolver import CredentialResolver


def _resolve(resolver, model, mode=ExecutionMode.ACTION, lookup=None):
    return asyncio.run(resolver.resolve(model, mode, lookup))


class TestActionMode:

    def test_resolves_openai_key_from_env(self):
        resolver = CredentialResolver(environ={"OPENAI_API_KEY": "sk-test"})
        creds = _resolve(resolver, "gpt-4o-2024-08-06")
        assert creds.provider.name == "openai"
        assert creds.secret == "sk-test"

    def test_resolves_anthropic_key_from_env(self):
        resolver = CredentialResolver(environ={"ANTHROPIC_API_KEY": "ak-test"})
        creds = _resolve(resolver, "claude-3-5-sonnet-20240620")
        assert creds.provider.name == "anthropic"

    def test_empty_model_fails_fast(self):
        resolver = CredentialResolver(environ={"OPENAI_API_KEY": "sk-test"})
        with pytest.raises(NoCredentialConfigured):
            _resolve(resolver, "")

    def test_unknown_model(self):
        resolver = CredentialResolver(environ={"OPENAI_API_KEY": "sk-test"})
        with pytest.raises(UnknownModel):
            _resolve(resolver, "gpt-99")

    def test_missing_env_var(self):
        resolver = CredentialResolver(environ={"ANTHROPIC_API_KEY": "ak-test"})
        with pytest.raises(MissingCredential) as exc:
            _resolve(resolver, "gpt-4o-2024-08-06")
        assert exc.value.provider == "openai"

    def test_blank_env_var_counts_as_missing(self):
        resolver = CredentialResolver(environ={"OPENAI_API_KEY": "   "})
        with pytest.raises(MissingCredential):
            _resolve(resolver, "gpt-4o-2024-08-06")

    def test_not_cached_between_calls(self):
        environ = {"OPENAI_API_KEY": "first"}
        resolver = CredentialResolver(environ=environ)
        assert _resolve(resolver, "gpt-4o-2024-08-06").secret == "first"
        environ["OPENAI_API_KEY"] = "second"
        assert _resolve(resolver, "gpt-4o-2024-08-06").secret == "second"


class TestAppMode:

    def test_reads_repo_variable(self):
        lookup = AsyncMock(return_value="sk-repo")
        resolver = CredentialResolver(environ={})
        creds = _resolve(resolver, "gpt-4o-2024-08-06", ExecutionMode.APP, lookup)
        assert creds.secret == "sk-repo"
        lookup.assert_awaited_once_with("OPENAI_API_KEY")

    def test_ignores_host_env_in_app_mode(self):
        lookup = AsyncMock(return_value=None)
        resolver = CredentialResolver(environ={"OPENAI_API_KEY": "host-key"})
        with pytest.raises(MissingCredential):
            _resolve(resolver, "gpt-4o-2024-08-06", ExecutionMode.APP, lookup)

    def test_no_lookup_available(self):
        resolver = CredentialResolver(environ={})
        with pytest.raises(NoCredentialConfigured):
            _resolve(resolver, "gpt-4o-2024-08-06", ExecutionMode.APP, None)


class TestEngineEnv:

    def test_engine_names_and_blank_other_providers(self):
        resolver = CredentialResolver(environ={"OPENAI_API_KEY": "sk-test"})
        env = _resolve(resolver, "gpt-4o-2024-08-06").engine_env()
        assert env == {"OPENAI_KEY": "sk-test", "ANTHROPIC_API_KEY": ""}

    def test_secret_not_in_repr(self):
        resolver = CredentialResolver(environ={"OPENAI_API_KEY": "sk-secret"})
        creds = _resolve(resolver, "gpt-4o-2024-08-06")
        assert "sk-secret" not in repr(creds)
