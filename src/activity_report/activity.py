"""조직 활동 이벤트를 사용자 단위로 집계한다."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from activity_report.models import ActivityEvent, UserActivity

logger = logging.getLogger(__name__)


def parse_events(raw_events: Iterable[dict[str, Any]]) -> list[ActivityEvent]:
    """API 원본 이벤트를 ActivityEvent로 변환한다. 검증 실패 항목은 건너뛴다."""
    events: list[ActivityEvent] = []
    for raw in raw_events:
        try:
            events.append(ActivityEvent.model_validate(raw))
        except ValidationError as exc:
            logger.warning("Failed to parse event %s: %s", raw.get("id", "unknown"), exc)
    return events


def aggregate_events_by_user(events: Iterable[ActivityEvent]) -> dict[str, UserActivity]:
    """login → UserActivity(events, 이벤트 타입별 집계). 입력 순서를 유지한다."""
    users: dict[str, UserActivity] = {}
    counters: dict[str, Counter[str]] = {}

    for event in events:
        handle = event.actor.handle
        bucket = users.get(handle)
        if bucket is None:
            bucket = UserActivity(login=handle, url=f"https://github.com/{handle}")
            users[handle] = bucket
            counters[handle] = Counter()
        bucket.events.append(event)
        bucket.avatar_url = event.actor.avatar_url
        counters[handle][event.type] += 1

    for handle, bucket in users.items():
        bucket.event_counts = dict(counters[handle])

    return users
