"""JSON 구조화 로깅 설정."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

_EXTRA_KEYS = ("event_code", "stage", "repo", "duration_ms", "counts")


class JsonFormatter(logging.Formatter):
    """JSON 형태로 로그 레코드를 포매팅한다."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # extra 필드 병합 (event_code, stage, repo, duration_ms, counts)
        for key in _EXTRA_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


def setup_logging(*, json_format: bool = True, level: int = logging.INFO) -> None:
    """패키지 루트 로거에 포매터를 설정한다.

    Args:
        json_format: True이면 JSON 포맷, False이면 기본 포맷
        level: 로그 레벨
    """
    root = logging.getLogger("activity_report")
    root.setLevel(level)

    # 기존 핸들러 제거 (중복 방지)
    root.handlers.clear()

    handler = logging.StreamHandler()
    handler.setLevel(level)

    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))

    root.addHandler(handler)


@contextmanager
def log_duration(logger: logging.Logger, stage: str, **counts: int) -> Iterator[dict[str, int]]:
    """블록 실행 시간을 측정하여 duration_ms와 함께 기록한다.

    yield된 dict에 카운트를 추가하면 완료 로그의 counts에 포함된다.
    """
    start = time.monotonic()
    collected: dict[str, int] = dict(counts)
    logger.debug("Stage %s started", stage, extra={"stage": stage})
    yield collected
    duration_ms = (time.monotonic() - start) * 1000
    logger.info(
        "Stage %s finished in %.0fms",
        stage,
        duration_ms,
        extra={
            "event_code": "STAGE_DONE",
            "stage": stage,
            "duration_ms": round(duration_ms, 1),
            "counts": collected or None,
        },
    )
