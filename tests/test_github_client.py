"""
Unit Tests — GitHub Client
==========================
All HTTP goes through httpx.MockTransport.
"""
import asyncio
import json

import httpx
import pytest

from patchbot.core.errors import PublishTransportFailure
from patchbot.services.github_client import GitHubClient

API = "https://api.github.test"


def make_client(handler, token="svc-token"):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GitHubClient(token=token, api_url=API, http=http)


def test_get_repo_variable():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"name": "OPENAI_API_KEY", "value": "sk-repo"})

    client = make_client(handler)
    value = asyncio.run(client.get_repo_variable("octo/hello-world", "OPENAI_API_KEY"))

    assert value == "sk-repo"
    assert seen["path"] == "/repos/octo/hello-world/actions/variables/OPENAI_API_KEY"
    assert seen["auth"] == "token svc-token"


def test_get_repo_variable_missing():
    client = make_client(lambda request: httpx.Response(404, json={"message": "Not Found"}))
    assert asyncio.run(client.get_repo_variable("octo/hello-world", "OPENAI_API_KEY")) is None


def test_get_repo_variable_server_error_raises():
    client = make_client(lambda request: httpx.Response(500))
    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(client.get_repo_variable("octo/hello-world", "OPENAI_API_KEY"))


def test_list_issue_comments_paginates():
    def item(i, kind="User"):
        return {"body": f"c{i}", "user": {"login": f"u{i}", "type": kind}}

    pages = {
        "1": [item(i) for i in range(100)],
        "2": [item(100, "Bot")],
    }

    def handler(request):
        return httpx.Response(200, json=pages[request.url.params["page"]])

    client = make_client(handler)
    comments = asyncio.run(client.list_issue_comments("octo/hello-world", 42))

    assert len(comments) == 101
    assert comments[0].body == "c0"
    assert comments[-1].is_bot
    assert comments[-1].author_login == "u100"


def test_create_issue_comment():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["json"] = json.loads(request.content)
        return httpx.Response(201, json={})

    client = make_client(handler)
    asyncio.run(client.create_issue_comment("octo/hello-world", 42, "hello"))

    assert seen == {"method": "POST", "path": "/repos/octo/hello-world/issues/42/comments", "json": {"body": "hello"}}


def test_create_pull_request():
    def handler(request):
        payload = json.loads(request.content)
        assert payload == {"title": "t", "body": "b", "head": "feature", "base": "main"}
        return httpx.Response(201, json={"number": 12, "html_url": "https://github.com/octo/hello-world/pull/12"})

    client = make_client(handler)
    pr = asyncio.run(client.create_pull_request("octo/hello-world", title="t", body="b", head="feature", base="main"))

    assert pr.number == 12
    assert pr.url.endswith("/pull/12")
    assert pr.branch == "feature"


def test_create_pull_request_failure():
    client = make_client(lambda request: httpx.Response(422, json={"message": "Validation Failed"}))
    with pytest.raises(PublishTransportFailure) as exc:
        asyncio.run(client.create_pull_request("o/r", title="t", body="b", head="h", base="main"))
    assert "422" in str(exc.value)


def test_for_token_shares_pool_and_switches_auth():
    seen = []

    def handler(request):
        seen.append(request.headers.get("Authorization"))
        return httpx.Response(201, json={})

    client = make_client(handler)
    scoped = client.for_token("ghs_install")

    assert scoped._http is client._http
    assert client.for_token(None) is client
    asyncio.run(scoped.create_issue_comment("o/r", 1, "x"))
    assert seen == ["token ghs_install"]
