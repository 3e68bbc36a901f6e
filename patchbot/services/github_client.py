"""
GitHub Client
=============
Thin async wrapper over the GitHub REST API for the calls the bot needs:

    - read a repository-scoped variable (multi-tenant credential lookup)
    - list / create issue comments
    - open a pull request

The client owns one httpx.AsyncClient; the composition root closes it on
shutdown. The token is either the service token (GITHUB_TOKEN) or a
short-lived installation token passed per request via ``for_token``.
"""
import logging
from typing import Dict, List, Optional

import httpx

from patchbot.core.config import GITHUB_API_URL, GITHUB_TOKEN
from patchbot.core.errors import PublishTransportFailure
from patchbot.models.conversation import Comment, PullRequestRef

logger = logging.getLogger(__name__)

_PER_PAGE = 100
_MAX_PAGES = 20


class GitHubClient:

    def __init__(
        self,
        token: str = GITHUB_TOKEN,
        api_url: str = GITHUB_API_URL,
        http: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.headers: Dict[str, str] = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "patchbot",
        }
        if token:
            self.headers["Authorization"] = f"token {token}"
        self._http = http or httpx.AsyncClient(headers=self.headers, timeout=20.0)

    def for_token(self, token: Optional[str]) -> "GitHubClient":
        """Same connection pool, different credentials (installation tokens)."""
        if not token or token == self.token:
            return self
        return GitHubClient(token=token, api_url=self.api_url, http=self._http)

    async def aclose(self) -> None:
        await self._http.aclose()

    def _url(self, path: str) -> str:
        return f"{self.api_url}/{path.lstrip('/')}"

    # ------------------------------------------------------------------
    # Repository variables
    # ------------------------------------------------------------------
    async def get_repo_variable(self, repo_full_name: str, name: str) -> Optional[str]:
        """Value of a repository Actions variable, or None if not set."""
        url = self._url(f"repos/{repo_full_name}/actions/variables/{name}")
        response = await self._http.get(url, headers=self.headers)
        if response.status_code == 404:
            logger.info("Variable %s not set on %s", name, repo_full_name)
            return None
        response.raise_for_status()
        return response.json().get("value")

    # ------------------------------------------------------------------
    # Issue comments
    # ------------------------------------------------------------------
    async def list_issue_comments(self, repo_full_name: str, issue_number: int) -> List[Comment]:
        """All comments on an issue, oldest first."""
        url = self._url(f"repos/{repo_full_name}/issues/{issue_number}/comments")
        comments: List[Comment] = []
        for page in range(1, _MAX_PAGES + 1):
            response = await self._http.get(
                url, headers=self.headers, params={"per_page": _PER_PAGE, "page": page},
            )
            response.raise_for_status()
            items = response.json()
            for item in items:
                user = item.get("user") or {}
                comments.append(Comment(
                    author_kind=user.get("type", ""),
                    author_login=user.get("login", ""),
                    body=item.get("body") or "",
                ))
            if len(items) < _PER_PAGE:
                break
        logger.info("Fetched %d comments for %s#%d", len(comments), repo_full_name, issue_number)
        return comments

    async def create_issue_comment(self, repo_full_name: str, issue_number: int, body: str) -> None:
        url = self._url(f"repos/{repo_full_name}/issues/{issue_number}/comments")
        response = await self._http.post(url, headers=self.headers, json={"body": body})
        response.raise_for_status()
        logger.info("Posted comment on %s#%d", repo_full_name, issue_number)

    # ------------------------------------------------------------------
    # Pull requests
    # ------------------------------------------------------------------
    async def create_pull_request(
        self,
        repo_full_name: str,
        title: str,
        body: str,
        head: str,
        base: str,
    ) -> PullRequestRef:
        url = self._url(f"repos/{repo_full_name}/pulls")
        payload = {"title": title, "body": body, "head": head, "base": base}
        try:
            response = await self._http.post(url, headers=self.headers, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            detail = e.response.text[:500]
            logger.error("Pull request creation failed (HTTP %d): %s", e.response.status_code, detail)
            raise PublishTransportFailure(
                f"pull request creation failed (HTTP {e.response.status_code}): {detail}"
            ) from e
        except httpx.HTTPError as e:
            logger.error("Pull request creation failed: %s", e)
            raise PublishTransportFailure(f"pull request creation failed: {e}") from e

        data = response.json()
        ref = PullRequestRef(number=data["number"], url=data.get("html_url", ""), branch=head, base=base)
        logger.info("Opened pull request #%d on %s (%s → %s)", ref.number, repo_full_name, head, base)
        return ref
