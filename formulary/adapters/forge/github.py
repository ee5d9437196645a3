"""
GitHub source host — release tarballs and release/tag listings.

Uses the GitHub REST API through ``urllib.request``. Listings are
paginated (100 per page); only the first few pages are read since the
newest releases come first.

A token (from the environment variable named in settings) raises the
API rate limit but is never required.
"""

from __future__ import annotations

import http.client
import json
import logging
import urllib.error
import urllib.request
from typing import Any

from formulary import __version__
from formulary.adapters.base import Release, SourceHost
from formulary.core.errors import FetchError, UpstreamUnavailable
from formulary.core.models.formula import github_repo

logger = logging.getLogger(__name__)

API_ROOT = "https://api.github.com"
_PER_PAGE = 100
_MAX_PAGES = 3
_USER_AGENT = f"formulary/{__version__}"


class GitHubSourceHost(SourceHost):
    """Source host backed by github.com."""

    def __init__(self, token: str | None = None, api_root: str = API_ROOT):
        self._token = token
        self._api_root = api_root.rstrip("/")

    @property
    def name(self) -> str:
        return "github"

    # ── Download ────────────────────────────────────────────────

    def fetch(self, url: str, timeout: float) -> bytes:
        logger.info("Fetching %s", url)
        req = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT})
        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                data = resp.read()
        except (urllib.error.URLError, http.client.HTTPException, TimeoutError, OSError) as e:
            raise FetchError(_repo_label(url), f"download of {url} failed: {e}") from e
        logger.debug("Fetched %d bytes from %s", len(data), url)
        return data

    # ── Listings ────────────────────────────────────────────────

    def list_releases(self, repo: str, timeout: float) -> list[Release]:
        releases: list[Release] = []
        for item in self._paginate(f"/repos/{repo}/releases", repo, timeout):
            tag = item.get("tag_name")
            if not isinstance(tag, str):
                continue
            releases.append(Release(
                tag=tag,
                draft=bool(item.get("draft")),
                prerelease=bool(item.get("prerelease")),
            ))
        return releases

    def list_tags(self, repo: str, timeout: float) -> list[str]:
        return [
            item["name"]
            for item in self._paginate(f"/repos/{repo}/tags", repo, timeout)
            if isinstance(item.get("name"), str)
        ]

    def _paginate(self, path: str, repo: str, timeout: float) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        for page in range(1, _MAX_PAGES + 1):
            batch = self._get_json(f"{path}?per_page={_PER_PAGE}&page={page}", repo, timeout)
            if not isinstance(batch, list):
                raise UpstreamUnavailable(repo, f"unexpected response from {path}")
            items.extend(i for i in batch if isinstance(i, dict))
            if len(batch) < _PER_PAGE:
                break
        return items

    def _get_json(self, path: str, repo: str, timeout: float) -> Any:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": _USER_AGENT,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        req = urllib.request.Request(f"{self._api_root}{path}", headers=headers)
        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                return json.loads(resp.read())
        except urllib.error.HTTPError as e:
            raise UpstreamUnavailable(repo, f"HTTP {e.code} from {path}") from e
        except (urllib.error.URLError, TimeoutError, OSError) as e:
            raise UpstreamUnavailable(repo, f"cannot reach {self._api_root}: {e}") from e
        except http.client.HTTPException as e:
            raise UpstreamUnavailable(repo, f"truncated response from {path}: {e!r}") from e
        except json.JSONDecodeError as e:
            raise UpstreamUnavailable(repo, f"invalid JSON from {path}: {e}") from e
        except ValueError as e:
            # Body is not UTF-8 (or another encoding json can detect)
            raise UpstreamUnavailable(repo, f"undecodable response from {path}: {e}") from e


def _repo_label(url: str) -> str:
    """Short label for error messages (``owner/repo`` when recognizable)."""
    return github_repo(url) or url
