"""로컬 JSON 캐시 (payload + timestamp sidecar).

캐시 엔트리 = <name>.json + <name>.timestamp
- timestamp가 freshness(기본 30분)보다 젊으면 fresh → 네트워크 호출 없이 payload 사용
- 파일 누락/손상/만료는 모두 cold로 취급 (치명적 오류 아님)
- 저장 순서: payload → timestamp. 중간에 죽으면 timestamp 없는 캐시 = cold
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import orjson
import pendulum

logger = logging.getLogger(__name__)

REPO_DATA = "repodata"
ACTIVITY_DATA = "activityData"

DEFAULT_FRESHNESS = timedelta(minutes=30)


class CacheError(Exception):
    """캐시 payload를 읽을 수 없음."""


@dataclass
class CachedPayload:
    """캐시에서 읽은 payload와 저장 시각."""

    payload: Any
    timestamp: datetime


def is_fresh(timestamp: datetime, now: datetime, freshness: timedelta = DEFAULT_FRESHNESS) -> bool:
    """now - timestamp < freshness"""
    return now - timestamp < freshness


def _atomic_write(path: Path, data: bytes) -> None:
    """임시 파일에 쓴 뒤 os.replace로 교체한다."""
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        tmp_path.write_bytes(data)
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


class CacheStore:
    """디렉터리 기반 캐시 저장소."""

    def __init__(self, cache_dir: Path, *, freshness: timedelta = DEFAULT_FRESHNESS) -> None:
        self._dir = cache_dir
        self._freshness = freshness

    @property
    def directory(self) -> Path:
        return self._dir

    def payload_path(self, name: str) -> Path:
        return self._dir / f"{name}.json"

    def timestamp_path(self, name: str) -> Path:
        return self._dir / f"{name}.timestamp"

    def read_timestamp(self, name: str) -> datetime | None:
        """timestamp 파일을 읽는다. 없거나 파싱 불가하면 None."""
        path = self.timestamp_path(name)
        if not path.exists():
            return None
        try:
            return pendulum.parse(path.read_text(encoding="utf-8").strip())
        except (OSError, ValueError) as exc:
            logger.warning("Unreadable cache timestamp %s: %s", path, exc)
            return None

    def read_payload(self, name: str) -> Any:
        """freshness와 무관하게 payload를 읽는다.

        Raises:
            CacheError: 파일이 없거나 JSON이 손상된 경우
        """
        path = self.payload_path(name)
        try:
            return orjson.loads(path.read_bytes())
        except FileNotFoundError as exc:
            raise CacheError(f"Cache file not found: {path}") from exc
        except (OSError, orjson.JSONDecodeError) as exc:
            raise CacheError(f"Malformed cache file {path}: {exc}") from exc

    def load(self, name: str, now: datetime | None = None) -> CachedPayload | None:
        """fresh한 캐시 엔트리를 반환한다. cold/stale이면 None."""
        now = now or pendulum.now("UTC")

        timestamp = self.read_timestamp(name)
        if timestamp is None or not self.payload_path(name).exists():
            logger.info("No cached %s data", name)
            return None

        cached_minutes = int((now - timestamp).total_seconds() // 60)
        logger.debug("Cached %s data is %d minutes old", name, cached_minutes)
        if not is_fresh(timestamp, now, self._freshness):
            logger.info("Cached %s data exists, but is out of date", name)
            return None

        try:
            payload = self.read_payload(name)
        except CacheError as exc:
            logger.warning("Ignoring cached %s data: %s", name, exc)
            return None

        return CachedPayload(payload=payload, timestamp=timestamp)

    def save(self, name: str, payload: Any, now: datetime | None = None) -> datetime:
        """payload를 쓰고 나서 timestamp를 쓴다. 저장 시각을 반환한다."""
        timestamp = now or pendulum.now("UTC")
        self._dir.mkdir(parents=True, exist_ok=True)

        _atomic_write(self.payload_path(name), orjson.dumps(payload, option=orjson.OPT_INDENT_2))
        _atomic_write(self.timestamp_path(name), timestamp.isoformat().encode("utf-8"))

        logger.info("Data written to %s", self.payload_path(name))
        return timestamp
