"""HTTP client for commit statuses, CI builds and release creation."""

from __future__ import annotations

import os
from typing import Any, Dict, Optional

import httpx

from ..config import CIConfig
from ..logging import get_logger

USER_AGENT = "extbuild/0.1.0"


class CIError(RuntimeError):
    """Raised when a CI or source-hosting request fails or returns an unexpected payload."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CIClient:
    """Talks to the source-hosting API (statuses, releases) and the CI API (builds)."""

    def __init__(
        self,
        config: CIConfig | None = None,
        *,
        github_token: Optional[str] = None,
        travis_token: Optional[str] = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.config = config or CIConfig()
        self.logger = get_logger("ci")

        github_token = github_token if github_token is not None else os.environ.get("GITHUB_TOKEN")
        travis_token = travis_token if travis_token is not None else os.environ.get("TRAVIS_TOKEN")

        github_headers = {"Accept": "application/vnd.github+json", "User-Agent": USER_AGENT}
        if github_token:
            github_headers["Authorization"] = f"token {github_token}"

        travis_headers = {"Accept": "application/vnd.travis-ci.2.1+json", "User-Agent": USER_AGENT}
        if travis_token:
            travis_headers["Authorization"] = f'token "{travis_token}"'

        self._github = httpx.AsyncClient(
            base_url=self.config.github_api_url.rstrip("/"),
            headers=github_headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )
        self._travis = httpx.AsyncClient(
            base_url=self.config.travis_api_url.rstrip("/"),
            headers=travis_headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def __aenter__(self) -> "CIClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._github.aclose()
        await self._travis.aclose()

    # ------------------------------------------------------------------
    # Source hosting

    async def combined_status(self, owner: str, repo: str, ref: str) -> Dict[str, Any]:
        """Return ``{"sha": ..., "statuses": [...]}`` for ``ref``."""
        data = await self._request(self._github, "GET", f"/repos/{owner}/{repo}/commits/{ref}/status")
        return {"sha": data.get("sha"), "statuses": list(data.get("statuses") or [])}

    async def create_release(
        self,
        owner: str,
        repo: str,
        tag: str,
        *,
        name: Optional[str] = None,
        body: str = "",
        prerelease: bool = False,
    ) -> Dict[str, Any]:
        payload = {
            "tag_name": tag,
            "name": name or tag,
            "body": body,
            "draft": False,
            "prerelease": prerelease,
        }
        return await self._request(self._github, "POST", f"/repos/{owner}/{repo}/releases", json=payload)

    # ------------------------------------------------------------------
    # CI

    async def build(self, build_id: str) -> Dict[str, Any]:
        """Return ``{"state": ..., "branch": ...}`` for a CI build."""
        data = await self._request(self._travis, "GET", f"/builds/{build_id}")

        build = data.get("build") if isinstance(data.get("build"), dict) else data
        commit = data.get("commit") if isinstance(data.get("commit"), dict) else {}
        state = build.get("state")
        if state is None:
            raise CIError(f"Build {build_id} has no state")

        branch = commit.get("branch")
        if branch is None and isinstance(build.get("branch"), dict):
            branch = build["branch"].get("name")
        return {"state": state, "branch": branch}

    # ------------------------------------------------------------------
    # Helpers

    async def _request(self, client: httpx.AsyncClient, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        self.logger.debug("%s %s%s", method, client.base_url, url)
        try:
            response = await client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise CIError(
                f"{method} {url} failed with status {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise CIError(f"{method} {url} failed: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise CIError(f"{method} {url} returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise CIError(f"{method} {url} returned an unexpected payload")
        return data


__all__ = ["CIClient", "CIError"]
