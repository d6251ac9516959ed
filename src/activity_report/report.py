"""HTML 리포트 렌더링 (Jinja2).

- 설정의 (template, output, sort) 목록마다 데이터셋을 바인딩해 렌더링
- 템플릿 헬퍼: parse_timestamp, since, humanize, partial, format_timestamp
- 생성 시각별 디렉터리에 쓰고 latest/로 전체 복사
"""

from __future__ import annotations

import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import Any

import pendulum
from jinja2 import Environment, FileSystemLoader
from markupsafe import Markup

from activity_report.config import AppConfig
from activity_report.models import Repository
from activity_report.pipeline import ActivityData, RepositoryData
from activity_report.sorting import sorter_for

logger = logging.getLogger(__name__)

PACKAGE_TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
PARTIALS_DIRNAME = "partials"
LATEST_DIRNAME = "latest"
DISPLAY_FORMAT = "dddd, MMMM D, YYYY h:mm A zz ([GMT]Z)"


class ReportRenderer:
    """Jinja2 환경 + 템플릿 헬퍼."""

    def __init__(
        self,
        templates_dir: Path = PACKAGE_TEMPLATES_DIR,
        *,
        timezone: str = "US/Eastern",
        now: datetime | None = None,
    ) -> None:
        self._templates_dir = templates_dir
        self._timezone = timezone
        self._now = pendulum.instance(now) if now else pendulum.now("UTC")
        self._env = Environment(
            loader=FileSystemLoader(templates_dir),
            autoescape=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._env.globals.update(
            parse_timestamp=self.parse_timestamp,
            since=self.since,
            humanize=self.humanize,
            partial=self.partial,
            format_timestamp=self.format_timestamp,
        )
        self._env.filters["format_timestamp"] = self.format_timestamp
        self._env.filters["humanize"] = self.humanize

    # ── 템플릿 헬퍼 ───────────────────────────────────────

    @staticmethod
    def parse_timestamp(value: str | datetime | None) -> pendulum.DateTime | None:
        if value is None or value == "":
            return None
        if isinstance(value, datetime):
            return pendulum.instance(value)
        return pendulum.parse(value)

    def since(self, value: str | datetime | None) -> pendulum.Interval | None:
        """value부터 지금까지의 기간."""
        start = self.parse_timestamp(value)
        if start is None:
            return None
        return self._now - start

    def humanize(self, value: str | datetime | None) -> str:
        start = self.parse_timestamp(value)
        if start is None:
            return ""
        return f"{start.diff_for_humans(self._now, absolute=True)} ago"

    def format_timestamp(self, value: str | datetime | None) -> str:
        ts = self.parse_timestamp(value)
        if ts is None:
            return ""
        return ts.in_timezone(self._timezone).format(DISPLAY_FORMAT)

    def partial(self, name: str) -> Markup:
        """partials/ 폴더의 파일을 그대로 삽입한다 (예: CSS)."""
        path = self._templates_dir / PARTIALS_DIRNAME / name
        return Markup(path.read_text(encoding="utf-8"))

    # ── 렌더링 ─────────────────────────────────────────────

    def render(self, template_name: str, context: dict[str, Any]) -> str:
        return self._env.get_template(template_name).render(**context)

    def write(self, template_name: str, output_path: Path, context: dict[str, Any]) -> Path:
        """렌더링 결과를 파일로 쓴다. 중간 디렉터리는 자동 생성."""
        html = self.render(template_name, context)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(html, encoding="utf-8")
        logger.info("Rendered %s -> %s", template_name, output_path)
        return output_path


def build_context(
    repos: list[Repository],
    repo_data: RepositoryData,
    activity_data: ActivityData,
    renderer: ReportRenderer,
    *,
    org: str,
    now: datetime,
) -> dict[str, Any]:
    """템플릿에 바인딩할 데이터."""
    watchlist = [{"repo": repo, "entry": entry} for repo in repos for entry in repo.watchlist]
    users = sorted(activity_data.users.values(), key=lambda u: u.event_count, reverse=True)
    status_counts: dict[str, int] = {}
    for repo in repos:
        if repo.status:
            status_counts[repo.status] = status_counts.get(repo.status, 0) + 1

    return {
        "org": org,
        "repos": repos,
        "watchlist": watchlist,
        "users": users,
        "status_counts": status_counts,
        "generated_timestamp": renderer.format_timestamp(now),
        "data_timestamp": renderer.format_timestamp(repo_data.timestamp),
        "activity_timestamp": renderer.format_timestamp(activity_data.timestamp),
    }


def mirror_directory(source: Path, destination: Path) -> None:
    """destination을 지우고 source 전체를 복사한다."""
    if destination.exists():
        shutil.rmtree(destination)
    shutil.copytree(source, destination)


def generate_reports(
    config: AppConfig,
    repo_data: RepositoryData,
    activity_data: ActivityData,
    *,
    now: datetime | None = None,
) -> Path:
    """설정된 모든 리포트를 생성하고 latest 디렉터리 경로를 반환한다."""
    now = pendulum.instance(now) if now else pendulum.now("UTC")
    output_config = config.output
    renderer = ReportRenderer(
        output_config.templates_dir or PACKAGE_TEMPLATES_DIR,
        timezone=output_config.timezone,
        now=now,
    )

    latest_dir = output_config.dir / LATEST_DIRNAME
    if output_config.versioned:
        target_dir = output_config.dir / now.in_timezone(output_config.timezone).format(
            "YYYY-MM-DD_HH-mm-ss"
        )
    else:
        target_dir = latest_dir

    for report in config.reports:
        repos = sorter_for(report.sort, config.default_contact)(repo_data.repos)
        context = build_context(repos, repo_data, activity_data, renderer, org=config.org, now=now)
        renderer.write(report.template, target_dir / report.output, context)

    if output_config.versioned:
        mirror_directory(target_dir, latest_dir)
        logger.info("Mirrored %s -> %s", target_dir, latest_dir)

    return latest_dir
