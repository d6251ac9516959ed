"""이슈/PR SLA 평가 + watchlist 구성.

- initial_response: 생성 후 N일 이내이거나, 한 번이라도 갱신됨 (updated_at != created_at)
- activity: 마지막 갱신 후 N일 이내
- resolution: 생성 후 N일 미만
세 항목은 서로 독립이며 하나라도 미충족이면 watchlist에 올라간다.
"""

from __future__ import annotations

from datetime import datetime

from activity_report.config import SlaConfig
from activity_report.metadata import days_since
from activity_report.models import (
    Issue,
    PullRequest,
    Repository,
    Sla,
    SlaCheck,
    WatchlistEntry,
    WatchlistType,
)


def evaluate_sla(
    created_at: datetime,
    updated_at: datetime,
    now: datetime,
    config: SlaConfig | None = None,
) -> Sla:
    """(created_at, updated_at, now)만으로 결정되는 순수 함수."""
    config = config or SlaConfig()
    age = days_since(created_at, now)
    last_activity = days_since(updated_at, now)

    return Sla(
        initial_response=SlaCheck(
            met=age <= config.initial_response_days or updated_at != created_at,
            days=age,
        ),
        activity=SlaCheck(met=last_activity <= config.activity_days, days=last_activity),
        resolution=SlaCheck(met=age < config.resolution_days, days=age),
    )


def _watchlist_entry(item: Issue | PullRequest, kind: WatchlistType, sla: Sla) -> WatchlistEntry:
    return WatchlistEntry(
        watchlist_type=kind,
        number=item.number,
        title=item.title,
        html_url=item.html_url,
        user=item.user,
        created_at=item.created_at,
        updated_at=item.updated_at,
        sla=sla,
    )


def apply_sla(repo: Repository, now: datetime, config: SlaConfig | None = None) -> None:
    """저장소의 모든 이슈/PR에 sla를 채우고 watchlist를 다시 만든다."""
    watchlist: list[WatchlistEntry] = []

    for issue in repo.issues:
        issue.sla = evaluate_sla(issue.created_at, issue.updated_at, now, config)
        if not issue.sla.met:
            watchlist.append(_watchlist_entry(issue, "issue", issue.sla))

    for pull_request in repo.pull_requests:
        pull_request.sla = evaluate_sla(pull_request.created_at, pull_request.updated_at, now, config)
        if not pull_request.sla.met:
            watchlist.append(_watchlist_entry(pull_request, "pull_request", pull_request.sla))

    repo.watchlist = watchlist
