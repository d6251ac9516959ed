"""저장소/활동 데이터 수집 파이프라인.

단계는 순차 실행되고, 단계 안에서는 모든 항목을 동시에 처리한 뒤 전부 끝나면 다음 단계로 넘어간다.
1. 저장소 목록 → 2. 저장소별 PR → 3. 저장소별 커밋 (기본 브랜치 + monitoredBranches)
4. 저장소별 이슈 → 5. PR별 댓글 (리뷰 + 이슈 댓글) → 6. PR별 커밋 → 7. marker 파일 확인
8. 파생 필드 → 9. SLA → 10. 연락처 → 11. 정렬

- 어느 항목이든 실패하면 단계 전체가 실패하고 실행이 중단된다 (캐시 저장 없음)
- marker 파일 확인만 예외: 404/기타 에러 모두 False로 기록하고 계속 진행
- 모든 상태는 PipelineContext로 명시적으로 전달된다
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TypeVar

import pendulum
from pydantic import ValidationError

from activity_report.activity import aggregate_events_by_user, parse_events
from activity_report.cache import ACTIVITY_DATA, REPO_DATA, CacheStore
from activity_report.config import AppConfig
from activity_report.contacts import ContactDirectory, resolve_repository_contacts
from activity_report.github_api import GitHubApiClient, GitHubApiError
from activity_report.logging_config import log_duration
from activity_report.metadata import derive_repository_metadata
from activity_report.models import (
    ActivityEvent,
    Commit,
    Issue,
    PullRequest,
    Repository,
    UserActivity,
)
from activity_report.sla import apply_sla
from activity_report.sorting import sort_by_last_commit

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _utcnow() -> datetime:
    return pendulum.now("UTC")


@dataclass
class PipelineContext:
    """한 번의 실행 동안 단계 사이에 전달되는 상태."""

    config: AppConfig
    contacts: ContactDirectory
    client_factory: Callable[[], GitHubApiClient]
    now: datetime = field(default_factory=_utcnow)
    clock: Callable[[], datetime] = field(default=_utcnow, repr=False)  # 캐시 저장 시각
    repos: list[Repository] = field(default_factory=list)
    _client: GitHubApiClient | None = field(default=None, init=False, repr=False)

    @property
    def client(self) -> GitHubApiClient:
        """처음 필요할 때 생성한다 (캐시가 fresh하면 토큰 없이도 실행 가능)."""
        if self._client is None:
            self._client = self.client_factory()
        return self._client

    @property
    def request_count(self) -> int:
        return self._client.request_count if self._client is not None else 0

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


@dataclass
class RepositoryData:
    repos: list[Repository]
    timestamp: datetime
    from_cache: bool = False


@dataclass
class ActivityData:
    events: list[ActivityEvent]
    users: dict[str, UserActivity]
    timestamp: datetime
    from_cache: bool = False


# ── fan-out / fan-in ───────────────────────────────────


def _failures(results: Iterable[Any]) -> list[BaseException]:
    return [r for r in results if isinstance(r, BaseException)]


async def gather_settled(*aws: Awaitable[T]) -> list[T]:
    """모든 작업이 끝날 때까지 기다린 뒤 결과를 순서대로 반환한다. 실패가 있으면 첫 번째 예외."""
    results = await asyncio.gather(*aws, return_exceptions=True)
    failures = _failures(results)
    if failures:
        raise failures[0]
    return results


async def fan_out(stage: str, items: Iterable[T], fn: Callable[[T], Awaitable[Any]]) -> None:
    """모든 항목을 동시에 실행하고 전부 끝날 때까지 기다린다.

    하나라도 실패하면 모든 실패를 기록한 뒤 첫 번째 예외를 다시 발생시킨다.
    """
    results = await asyncio.gather(*(fn(item) for item in items), return_exceptions=True)
    failures = _failures(results)
    for exc in failures:
        logger.error(
            "Stage %s failed: %s",
            stage,
            exc,
            extra={"event_code": "STAGE_FAILED", "stage": stage},
        )
    if failures:
        raise failures[0]


def _pull_request_items(repos: list[Repository]) -> list[tuple[Repository, PullRequest]]:
    return [(repo, pr) for repo in repos for pr in repo.pull_requests]


# ── 단계 ───────────────────────────────────────────────


async def list_repositories(ctx: PipelineContext) -> None:
    raw_repos = await ctx.client.list_org_repos(ctx.config.org)
    for raw in raw_repos:
        ctx.repos.append(Repository.model_validate(raw))


async def fetch_pull_requests(ctx: PipelineContext) -> None:
    async def load(repo: Repository) -> None:
        data = await ctx.client.list_pull_requests(repo.owner.login, repo.name)
        repo.pull_requests = [PullRequest.model_validate(d) for d in data]

    await fan_out("repo prs", ctx.repos, load)


async def fetch_commits(ctx: PipelineContext) -> None:
    async def load(repo: Repository) -> None:
        owner, name = repo.owner.login, repo.name
        branches = ctx.contacts.monitored_branches(owner, name)
        pages = await gather_settled(
            ctx.client.list_commits(owner, name),
            *(ctx.client.list_commits(owner, name, branch) for branch in branches),
        )
        repo.commits = [Commit.model_validate(d) for page in pages for d in page]

    await fan_out("repo commits", ctx.repos, load)


async def fetch_issues(ctx: PipelineContext) -> None:
    async def load(repo: Repository) -> None:
        data = await ctx.client.list_issues(repo.owner.login, repo.name)
        repo.issues = [Issue.model_validate(d) for d in data]

    await fan_out("repo issues", ctx.repos, load)


async def fetch_pull_request_comments(ctx: PipelineContext) -> None:
    async def load(item: tuple[Repository, PullRequest]) -> None:
        repo, pull_request = item
        pull_request.comments = await ctx.client.list_pull_request_comments(
            repo.owner.login, repo.name, pull_request.number,
        )

    await fan_out("pr comments", _pull_request_items(ctx.repos), load)


async def fetch_pull_request_commits(ctx: PipelineContext) -> None:
    async def load(item: tuple[Repository, PullRequest]) -> None:
        repo, pull_request = item
        data = await ctx.client.list_pull_request_commits(
            repo.owner.login, repo.name, pull_request.number,
        )
        pull_request.commits = [Commit.model_validate(d) for d in data]

    await fan_out("pr commits", _pull_request_items(ctx.repos), load)


async def probe_marker_files(ctx: PipelineContext) -> None:
    """marker 파일 존재 여부. 실패해도 파이프라인을 멈추지 않는다."""
    marker = ctx.config.marker_file

    async def probe(repo: Repository) -> None:
        try:
            repo.has_marker_file = await ctx.client.file_exists(repo.owner.login, repo.name, marker)
        except GitHubApiError as exc:
            logger.warning(
                "Marker file probe failed for %s: %s",
                repo.slug,
                exc,
                extra={"repo": repo.slug},
            )
            repo.has_marker_file = False

    await fan_out("marker files", ctx.repos, probe)


def finalize_repositories(ctx: PipelineContext) -> list[Repository]:
    """파생 필드 → SLA → 연락처 → 정렬 (네트워크 없음)."""
    for repo in ctx.repos:
        derive_repository_metadata(repo, ctx.now)
        apply_sla(repo, ctx.now, ctx.config.sla)
        repo.contacts = resolve_repository_contacts(
            repo, ctx.contacts, ctx.config.default_contact,
        )
    ctx.repos = sort_by_last_commit(ctx.repos)
    return ctx.repos


async def run_repository_pipeline(ctx: PipelineContext) -> list[Repository]:
    """GitHub API에서 저장소 데이터셋을 새로 수집한다."""
    with log_duration(logger, "repo list") as counts:
        await list_repositories(ctx)
        counts["repos"] = len(ctx.repos)

    with log_duration(logger, "repo prs") as counts:
        await fetch_pull_requests(ctx)
        counts["pull_requests"] = sum(len(r.pull_requests) for r in ctx.repos)

    with log_duration(logger, "repo commits") as counts:
        await fetch_commits(ctx)
        counts["commits"] = sum(len(r.commits) for r in ctx.repos)

    with log_duration(logger, "repo issues") as counts:
        await fetch_issues(ctx)
        counts["issues"] = sum(len(r.issues) for r in ctx.repos)

    with log_duration(logger, "pr comments"):
        await fetch_pull_request_comments(ctx)

    with log_duration(logger, "pr commits"):
        await fetch_pull_request_commits(ctx)

    if ctx.config.marker_file:
        with log_duration(logger, "marker files") as counts:
            await probe_marker_files(ctx)
            counts["with_marker"] = sum(1 for r in ctx.repos if r.has_marker_file)

    logger.debug("Request Count: %d", ctx.request_count)

    with log_duration(logger, "repo meta") as counts:
        repos = finalize_repositories(ctx)
        counts["watchlist"] = sum(len(r.watchlist) for r in repos)

    return repos


# ── 캐시 연동 ──────────────────────────────────────────


async def load_repository_data(
    ctx: PipelineContext, cache: CacheStore, *, force_refresh: bool = False,
) -> RepositoryData:
    """fresh 캐시가 있으면 그대로 사용하고, 없으면 수집 후 저장한다."""
    if not force_refresh:
        cached = cache.load(REPO_DATA, ctx.now)
        if cached is not None:
            try:
                repos = [Repository.model_validate(raw) for raw in cached.payload]
            except (ValidationError, TypeError) as exc:
                logger.warning("Ignoring cached repo data: %s", exc)
            else:
                logger.info("Loading repo data from cache")
                ctx.repos = repos
                return RepositoryData(repos=repos, timestamp=cached.timestamp, from_cache=True)

    logger.info("Retrieving repo data from GitHub API. This will take a moment.")
    ctx.repos = []
    repos = await run_repository_pipeline(ctx)
    # 캐시 시각은 실행 시작이 아니라 저장 시점 기준
    timestamp = cache.save(REPO_DATA, [r.model_dump(mode="json") for r in repos], ctx.clock())
    return RepositoryData(repos=repos, timestamp=timestamp)


async def load_activity_data(
    ctx: PipelineContext, cache: CacheStore, *, force_refresh: bool = False,
) -> ActivityData:
    """조직 이벤트 데이터셋 (기간: 최근 events.range_days일)."""
    events_config = ctx.config.events
    if not events_config.enabled:
        return ActivityData(events=[], users={}, timestamp=ctx.now)

    cached = None if force_refresh else cache.load(ACTIVITY_DATA, ctx.now)
    if cached is not None and isinstance(cached.payload, list):
        logger.info("Loading activity data from cache")
        events = parse_events(cached.payload)
        timestamp = cached.timestamp
        from_cache = True
    else:
        logger.info("Retrieving activity data from GitHub API")
        range_start = pendulum.instance(ctx.now).subtract(days=events_config.range_days)
        with log_duration(logger, "org events") as counts:
            raw_events = await ctx.client.list_org_events(
                ctx.config.org, range_start, max_pages=events_config.max_pages,
            )
            counts["events"] = len(raw_events)
        timestamp = cache.save(ACTIVITY_DATA, raw_events, ctx.clock())
        events = parse_events(raw_events)
        from_cache = False

    users = aggregate_events_by_user(events)
    return ActivityData(events=events, users=users, timestamp=timestamp, from_cache=from_cache)


async def collect_datasets(
    ctx: PipelineContext, cache: CacheStore, *, force_refresh: bool = False,
) -> tuple[RepositoryData, ActivityData]:
    """두 데이터셋을 순서대로 로딩하고 클라이언트를 정리한다."""
    try:
        repo_data = await load_repository_data(ctx, cache, force_refresh=force_refresh)
        activity_data = await load_activity_data(ctx, cache, force_refresh=force_refresh)
    finally:
        await ctx.aclose()
    return repo_data, activity_data
