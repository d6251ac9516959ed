"""GitHub REST API 비동기 클라이언트.

조직 단위 리소스(저장소, PR, 이슈, 커밋, 댓글, 이벤트)를 페이지 병합된 전체 결과로 반환한다.
- Link 헤더 기반 pagination (lazy page iterator)
- 페이지 번호 기반 pagination (저장소: 빈 페이지까지, 이벤트: 기간 시작 시점 또는 max_pages까지)
- 어떤 페이지든 실패하면 해당 리소스 전체가 GitHubApiError로 실패 (부분 결과 없음, 재시도 없음)
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

import httpx
import pendulum

from activity_report.config import GitHubApiConfig

logger = logging.getLogger(__name__)

DEFAULT_EVENT_MAX_PAGES = 10


class GitHubApiError(Exception):
    """GitHub API 호출 실패."""

    def __init__(self, status_code: int, message: str, url: str = ""):
        self.status_code = status_code
        self.url = url
        super().__init__(f"GitHub API error {status_code} ({url}): {message}")


def parse_next_link(headers: httpx.Headers | dict[str, str]) -> str | None:
    """Link 헤더에서 rel="next" URL을 추출한다."""
    link_header = headers.get("link") or headers.get("Link")
    if not link_header:
        return None

    for part in link_header.split(","):
        match = re.search(r'<([^>]+)>;\s*rel="next"', part)
        if match:
            return match.group(1)
    return None


def _parse_created_at(event: dict[str, Any]) -> datetime:
    return pendulum.parse(event["created_at"])


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200] or resp.reason_phrase
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return resp.reason_phrase


class GitHubApiClient:
    """GitHub REST API 비동기 클라이언트."""

    def __init__(
        self,
        config: GitHubApiConfig,
        token: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        token = token or os.environ.get(config.token_env_var, "")
        if not token:
            raise RuntimeError(f"환경변수 {config.token_env_var}이 설정되지 않았습니다")

        self._config = config
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": config.user_agent,
            },
            timeout=config.request_timeout_sec,
            transport=transport,
        )
        self._semaphore = asyncio.Semaphore(config.max_concurrency)
        self._request_count = 0
        self._rate_remaining: int | None = None

    # ── 요청 ───────────────────────────────────────────────

    def _check_rate_limit(self, response: httpx.Response) -> None:
        """응답 헤더에서 rate limit 잔량을 갱신하고, 임계값을 넘으면 경고한다."""
        remaining = response.headers.get("X-RateLimit-Remaining")
        if remaining is None:
            return

        previous = self._rate_remaining
        self._rate_remaining = int(remaining)
        threshold = self._config.rate_limit_warn_threshold
        if self._rate_remaining <= threshold and (previous is None or previous > threshold):
            logger.warning(
                "Rate limit approaching (%d remaining, resets at %s)",
                self._rate_remaining,
                response.headers.get("X-RateLimit-Reset", "unknown"),
            )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """공통 요청 메서드. 2xx가 아니면 GitHubApiError를 발생시킨다."""
        async with self._semaphore:
            self._request_count += 1
            try:
                resp = await self._client.request(method, path, params=params)
            except httpx.HTTPError as exc:
                raise GitHubApiError(0, f"{type(exc).__name__}: {exc}", path) from exc

        self._check_rate_limit(resp)

        if self._config.debug:
            logger.debug("%s %s -> %d", method, resp.url, resp.status_code)

        if not resp.is_success:
            raise GitHubApiError(resp.status_code, _error_message(resp), str(resp.url))
        return resp

    async def _get_list(
        self, path: str, params: dict[str, Any] | None = None,
    ) -> tuple[list[dict[str, Any]], httpx.Response]:
        resp = await self._request("GET", path, params=params)
        data = resp.json() if resp.content else []
        if not isinstance(data, list):
            raise GitHubApiError(resp.status_code, "expected a JSON array", str(resp.url))
        return data, resp

    # ── pagination ─────────────────────────────────────────

    async def iter_pages(
        self, path: str, params: dict[str, Any] | None = None,
    ) -> AsyncIterator[list[dict[str, Any]]]:
        """Link 헤더의 rel="next"를 따라가며 페이지 단위로 yield한다."""
        url: str | None = path
        query: dict[str, Any] | None = {"per_page": self._config.per_page, **(params or {})}

        while url:
            page, resp = await self._get_list(url, query)
            yield page
            url = parse_next_link(resp.headers)
            query = None  # 다음 페이지 URL에 이미 params 포함

    async def iter_numbered_pages(
        self, path: str, params: dict[str, Any] | None = None,
    ) -> AsyncIterator[tuple[int, list[dict[str, Any]]]]:
        """page=1,2,… 순서로 페이지를 yield한다. 종료 조건은 호출자가 결정한다."""
        page_no = 1
        while True:
            query = {"per_page": self._config.per_page, "page": page_no, **(params or {})}
            page, _ = await self._get_list(path, query)
            yield page_no, page
            page_no += 1

    async def paginate(self, path: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """모든 페이지를 순서대로 이어붙인 전체 결과."""
        items: list[dict[str, Any]] = []
        async for page in self.iter_pages(path, params):
            items.extend(page)
        return items

    # ── 저장소 리소스 ──────────────────────────────────────

    async def list_org_repos(self, org: str) -> list[dict[str, Any]]:
        """GET /orgs/{org}/repos: 빈 페이지가 나올 때까지 수집."""
        repos: list[dict[str, Any]] = []
        async for page_no, page in self.iter_numbered_pages(f"/orgs/{org}/repos"):
            logger.debug("Getting repos page %d", page_no)
            if not page:
                break
            repos.extend(page)
        return repos

    async def list_pull_requests(self, owner: str, repo: str) -> list[dict[str, Any]]:
        """GET /repos/{owner}/{repo}/pulls"""
        return await self.paginate(f"/repos/{owner}/{repo}/pulls")

    async def list_commits(
        self, owner: str, repo: str, branch: str | None = None,
    ) -> list[dict[str, Any]]:
        """GET /repos/{owner}/{repo}/commits: branch 미지정 시 기본 브랜치.

        빈 저장소는 409 (Git Repository is empty)를 반환하므로 빈 이력으로 취급한다.
        """
        params = {"sha": branch} if branch else None
        try:
            return await self.paginate(f"/repos/{owner}/{repo}/commits", params)
        except GitHubApiError as exc:
            if exc.status_code == 409:
                logger.debug("Repository %s/%s has no commits", owner, repo)
                return []
            raise

    async def list_issues(self, owner: str, repo: str) -> list[dict[str, Any]]:
        """GET /repos/{owner}/{repo}/issues: PR도 섞여서 반환된다."""
        return await self.paginate(f"/repos/{owner}/{repo}/issues")

    async def list_pull_request_comments(
        self, owner: str, repo: str, number: int,
    ) -> list[dict[str, Any]]:
        """리뷰 댓글(/pulls/{n}/comments) + 이슈 댓글(/issues/{n}/comments)을 이어붙인다."""
        review_comments = await self.paginate(f"/repos/{owner}/{repo}/pulls/{number}/comments")
        issue_comments = await self.paginate(f"/repos/{owner}/{repo}/issues/{number}/comments")
        return review_comments + issue_comments

    async def list_pull_request_commits(
        self, owner: str, repo: str, number: int,
    ) -> list[dict[str, Any]]:
        """GET /repos/{owner}/{repo}/pulls/{n}/commits"""
        return await self.paginate(f"/repos/{owner}/{repo}/pulls/{number}/commits")

    async def file_exists(self, owner: str, repo: str, path: str) -> bool:
        """GET /repos/{owner}/{repo}/contents/{path}: 404면 False, 그 외 에러는 전파."""
        try:
            await self._request("GET", f"/repos/{owner}/{repo}/contents/{path}")
        except GitHubApiError as exc:
            if exc.status_code == 404:
                return False
            raise
        return True

    # ── 이벤트 ─────────────────────────────────────────────

    async def _list_events(
        self,
        path: str,
        range_start: datetime | None,
        range_end: datetime | None,
        max_pages: int,
    ) -> list[dict[str, Any]]:
        """기간 시작 시점보다 오래된 이벤트가 나오거나 max_pages에 도달할 때까지 수집 후 기간으로 자른다."""
        now = pendulum.now("UTC")
        start = range_start or now.subtract(years=1)
        end = range_end or now.add(years=1)

        events: list[dict[str, Any]] = []
        async for page_no, page in self.iter_numbered_pages(path):
            logger.debug("Getting events page %d", page_no)
            if not page:
                break
            events.extend(page)
            if page_no >= max_pages or _parse_created_at(page[-1]) <= start:
                break

        pruned = [e for e in events if start <= _parse_created_at(e) <= end]
        logger.debug("%d events pruned to %d", len(events), len(pruned))
        return pruned

    async def list_org_events(
        self,
        org: str,
        range_start: datetime | None = None,
        range_end: datetime | None = None,
        *,
        max_pages: int = DEFAULT_EVENT_MAX_PAGES,
    ) -> list[dict[str, Any]]:
        """GET /orgs/{org}/events"""
        return await self._list_events(f"/orgs/{org}/events", range_start, range_end, max_pages)

    async def list_user_org_events(
        self,
        username: str,
        org: str,
        range_start: datetime | None = None,
        range_end: datetime | None = None,
        *,
        max_pages: int = DEFAULT_EVENT_MAX_PAGES,
    ) -> list[dict[str, Any]]:
        """GET /users/{username}/events/orgs/{org}: 인증 사용자 기준 org 이벤트."""
        return await self._list_events(
            f"/users/{username}/events/orgs/{org}", range_start, range_end, max_pages,
        )

    # ── 상태 ───────────────────────────────────────────────

    @property
    def request_count(self) -> int:
        """지금까지 보낸 요청 수."""
        return self._request_count

    @property
    def rate_remaining(self) -> int | None:
        """현재 남은 rate limit."""
        return self._rate_remaining

    async def aclose(self) -> None:
        """httpx.AsyncClient를 종료한다."""
        await self._client.aclose()

    async def __aenter__(self) -> GitHubApiClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
