"""저장소 파생 필드 계산 (나이, 최근 커밋, 상태, 카운트, 링크)."""

from __future__ import annotations

from datetime import datetime

import pendulum

from activity_report.models import Repository, RepoStatus

# (마지막 커밋 이후 일수 상한, status, 표시 이름): 상한 미만이면 해당 상태
_STATUS_THRESHOLDS: tuple[tuple[int, RepoStatus, str], ...] = (
    (30, "active", "Active"),
    (180, "idle", "Idle"),
    (365, "stagnant", "Stagnant"),
)


def days_since(timestamp: datetime, now: datetime) -> int:
    """timestamp부터 now까지 경과한 일수 (소수점 버림)."""
    return int((now - timestamp).total_seconds() / 86400)


def humanize_since(timestamp: datetime, now: datetime) -> str:
    """경과 시간을 사람이 읽는 문자열로 ("3 months")."""
    return pendulum.instance(timestamp).diff_for_humans(pendulum.instance(now), absolute=True)


def classify_status(last_commit_days: int | None) -> tuple[RepoStatus, str]:
    """마지막 커밋 이후 일수로 저장소 상태를 결정한다. 커밋 이력이 없으면 unknown."""
    if last_commit_days is None:
        return "unknown", "Unknown"
    for limit, status, display in _STATUS_THRESHOLDS:
        if last_commit_days < limit:
            return status, display
    return "inactive", "Inactive"


def derive_repository_metadata(repo: Repository, now: datetime) -> None:
    """수집이 끝난 저장소에 파생 필드를 채운다 (제자리 갱신)."""
    repo.age = humanize_since(repo.created_at, now)

    # PR이 섞여 있는 issues 응답에서 순수 이슈만 남긴다
    repo.issues = [issue for issue in repo.issues if not issue.is_pull_request]

    dated_commits = [c for c in repo.commits if c.authored_at is not None]
    if dated_commits:
        latest = max(dated_commits, key=lambda c: c.authored_at)
        repo.last_commit = latest
        repo.last_commit_date = latest.authored_at
        repo.last_commit_days = days_since(latest.authored_at, now)
        repo.last_commit_age = f"{humanize_since(latest.authored_at, now)} ago"
    else:
        repo.last_commit = None
        repo.last_commit_date = None
        repo.last_commit_days = None
        repo.last_commit_age = "no commits"

    repo.status, repo.status_display = classify_status(repo.last_commit_days)

    repo.commit_count = len(repo.commits)
    repo.pull_request_count = len(repo.pull_requests)
    repo.issue_count = len(repo.issues)

    base_url = repo.html_url.rstrip("/")
    repo.pull_requests_url = f"{base_url}/pulls"
    repo.issues_url = f"{base_url}/issues" if repo.has_issues else None
