from __future__ import annotations

import http.client
import json
import logging
import re
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Protocol

from .models import PullRequest

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
DEFAULT_TIMEOUT_SECONDS = 30

_REMOTE_RE = re.compile(r"[:/]([^/:]+)/([^/]+?)(?:\.git)?/?$")


class PullRequestError(RuntimeError):
    """Raised when the pull-request API rejects a request or cannot be reached."""


class PullRequestPort(Protocol):
    def create_pull_request(
        self, *, owner: str, repo: str, head: str, base: str, title: str, body: str
    ) -> PullRequest: ...

    def find_open_pull_request(self, *, owner: str, repo: str, head: str, base: str) -> PullRequest | None: ...

    def update_pull_request(
        self,
        *,
        owner: str,
        repo: str,
        number: int,
        title: str | None = None,
        body: str | None = None,
        state: str | None = None,
    ) -> PullRequest: ...


def parse_remote_url(remote_url: str | None) -> tuple[str, str] | None:
    """Return ``(owner, repo)`` for SSH or HTTPS remotes, ``None`` if unrecognised.

    ``git@github.com:org/repo.git`` and ``https://github.com/org/repo`` both give
    ``("org", "repo")``.
    """
    if not remote_url:
        return None
    match = _REMOTE_RE.search(remote_url.strip())
    if match is None:
        return None
    return match.group(1), match.group(2)


def _to_pull_request(data: Any) -> PullRequest:
    if not isinstance(data, dict) or "number" not in data or "html_url" not in data:
        raise PullRequestError("GitHub API response is missing number/html_url")
    return PullRequest(number=int(data["number"]), url=str(data["html_url"]))


class GitHubClient:
    """Minimal GitHub REST client for the pull-request calls the orchestrator makes."""

    def __init__(
        self,
        token: str,
        *,
        api_url: str = GITHUB_API_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        if not token:
            raise ValueError("GitHub token must be non-empty")
        self._token = token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def create_pull_request(
        self, *, owner: str, repo: str, head: str, base: str, title: str, body: str
    ) -> PullRequest:
        url = f"{self.api_url}/repos/{owner}/{repo}/pulls"
        data = self._request_json("POST", url, {"title": title, "body": body, "head": head, "base": base})
        return _to_pull_request(data)

    def find_open_pull_request(self, *, owner: str, repo: str, head: str, base: str) -> PullRequest | None:
        query = urllib.parse.urlencode({"state": "open", "head": f"{owner}:{head}", "base": base})
        url = f"{self.api_url}/repos/{owner}/{repo}/pulls?{query}"
        data = self._request_json("GET", url, None)
        if not isinstance(data, list):
            raise PullRequestError("GitHub API returned a non-list response for pull request search")
        if not data:
            return None
        return _to_pull_request(data[0])

    def update_pull_request(
        self,
        *,
        owner: str,
        repo: str,
        number: int,
        title: str | None = None,
        body: str | None = None,
        state: str | None = None,
    ) -> PullRequest:
        payload = {key: value for key, value in (("title", title), ("body", body), ("state", state)) if value is not None}
        url = f"{self.api_url}/repos/{owner}/{repo}/pulls/{number}"
        data = self._request_json("PATCH", url, payload)
        return _to_pull_request(data)

    def _request_json(self, method: str, url: str, payload: dict[str, Any] | None) -> Any:
        """Send one API request and return the decoded JSON body.

        Raises:
            PullRequestError: On HTTP errors, network failures, timeouts or an unreadable body.
        """
        headers = {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        data = None
        if payload is not None:
            headers["Content-Type"] = "application/json"
            data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(url, method=method, headers=headers, data=data)
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                return json.loads(response.read().decode("utf-8"))
        except urllib.error.HTTPError as exc:
            body = ""
            try:
                body = exc.read().decode("utf-8", errors="replace")[:500]
            except OSError:
                pass
            logger.error("HTTP %d from %s %s: %s", exc.code, method, url, body)
            raise PullRequestError(f"GitHub API error {exc.code}: {body or exc.reason}") from exc
        except urllib.error.URLError as exc:
            logger.error("URL error reaching %s: %s", url, exc.reason)
            raise PullRequestError(f"Failed to reach {url}: {exc.reason}") from exc
        except TimeoutError as exc:
            raise PullRequestError(f"Timed out after {self.timeout}s calling {url}") from exc
        except json.JSONDecodeError as exc:
            logger.error("Invalid JSON response from %s", url)
            raise PullRequestError(f"Invalid JSON response from {url}") from exc
        except (UnicodeDecodeError, http.client.HTTPException) as exc:
            logger.error("Unreadable response from %s: %s", url, exc)
            raise PullRequestError(f"Unreadable response from {url}: {exc}") from exc
