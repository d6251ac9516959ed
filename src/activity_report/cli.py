"""click CLI 엔트리포인트.

activity-report generate --config config.yaml
activity-report fetch --force-refresh
activity-report email-lists
"""

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import timedelta
from pathlib import Path

import click
import orjson
import yaml
from pydantic import ValidationError

from activity_report.cache import REPO_DATA, CacheError, CacheStore
from activity_report.config import AppConfig, load_config
from activity_report.contacts import ContactDirectory, load_contacts
from activity_report.email_lists import build_email_lists, write_email_lists
from activity_report.github_api import GitHubApiClient
from activity_report.logging_config import setup_logging
from activity_report.models import Repository
from activity_report.pipeline import PipelineContext, collect_datasets
from activity_report.report import generate_reports

logger = logging.getLogger(__name__)

EXIT_PIPELINE_FAILURE = 70


def _load_config(config_path: Path | None) -> AppConfig:
    """설정 로딩. 실패는 사용법 오류(exit 2)로 보고한다."""
    try:
        return load_config(config_path)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        raise click.UsageError(f"설정 파일을 읽을 수 없습니다: {exc}") from exc


def _load_contacts(config: AppConfig) -> ContactDirectory:
    """연락처 파일 로딩. 설정 파일과 같은 방식으로 사용법 오류로 보고한다."""
    try:
        return load_contacts(config.contacts)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        raise click.UsageError(f"연락처 파일을 읽을 수 없습니다: {exc}") from exc


def _setup(config_path: Path | None, json_log: bool, debug: bool) -> AppConfig:
    setup_logging(json_format=json_log, level=logging.DEBUG if debug else logging.INFO)
    config = _load_config(config_path)
    if debug:
        # --debug는 API 요청 로그까지 켠다
        config.github.debug = True
    elif config.github.debug:
        setup_logging(json_format=json_log, level=logging.DEBUG)
    return config


def _cache_store(config: AppConfig) -> CacheStore:
    return CacheStore(config.cache.dir, freshness=timedelta(minutes=config.cache.freshness_minutes))


def _pipeline_context(config: AppConfig) -> PipelineContext:
    return PipelineContext(
        config=config,
        contacts=_load_contacts(config),
        client_factory=lambda: GitHubApiClient(config.github),
    )


config_option = click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="설정 파일 경로 (기본: 프로젝트 루트 config.yaml)",
)
json_log_option = click.option(
    "--json-log/--no-json-log", default=True, help="JSON 로그 포맷 (기본: 활성)",
)
debug_option = click.option("--debug", is_flag=True, default=False, help="DEBUG 로그 (요청 로그 포함)")


@click.group()
@click.version_option(version="0.1.0", prog_name="activity-report")
def main() -> None:
    """GitHub 조직 활동 리포트 - 저장소 상태/SLA watchlist/활동 HTML 리포트를 생성합니다."""


@main.command()
@config_option
@click.option("--force-refresh", is_flag=True, default=False, help="캐시를 무시하고 API에서 다시 수집")
@json_log_option
@debug_option
def generate(config_path: Path | None, force_refresh: bool, json_log: bool, debug: bool) -> None:
    """데이터를 로딩(캐시 또는 API)하고 설정된 모든 리포트를 렌더링합니다."""
    config = _setup(config_path, json_log, debug)
    cache = _cache_store(config)
    ctx = _pipeline_context(config)

    try:
        repo_data, activity_data = asyncio.run(
            collect_datasets(ctx, cache, force_refresh=force_refresh)
        )
        latest_dir = generate_reports(config, repo_data, activity_data, now=ctx.now)
    except Exception as exc:
        logger.exception(
            "Report generation failed: %s", exc, extra={"event_code": "PIPELINE_FAILED"},
        )
        sys.exit(EXIT_PIPELINE_FAILURE)

    click.echo(
        f"Generated {len(config.reports)} reports for {len(repo_data.repos)} repos -> {latest_dir}"
    )


@main.command()
@config_option
@click.option("--force-refresh", is_flag=True, default=False, help="캐시를 무시하고 API에서 다시 수집")
@json_log_option
@debug_option
def fetch(config_path: Path | None, force_refresh: bool, json_log: bool, debug: bool) -> None:
    """캐시만 갱신합니다 (fresh 캐시는 --force-refresh 없이는 유지)."""
    config = _setup(config_path, json_log, debug)
    cache = _cache_store(config)
    ctx = _pipeline_context(config)

    try:
        repo_data, activity_data = asyncio.run(
            collect_datasets(ctx, cache, force_refresh=force_refresh)
        )
    except Exception as exc:
        logger.exception("Fetch failed: %s", exc, extra={"event_code": "PIPELINE_FAILED"})
        sys.exit(EXIT_PIPELINE_FAILURE)

    source = "cache" if repo_data.from_cache else "api"
    click.echo(
        f"Fetch complete: repos={len(repo_data.repos)} ({source}), "
        f"events={len(activity_data.events)}, requests={ctx.request_count}"
    )


@main.command("email-lists")
@config_option
@json_log_option
def email_lists(config_path: Path | None, json_log: bool) -> None:
    """repodata 캐시에서 watchlist 수신자 목록과 opt-in 목록을 만듭니다."""
    config = _setup(config_path, json_log, debug=False)
    cache = _cache_store(config)

    try:
        payload = cache.read_payload(REPO_DATA)
        repos = [Repository.model_validate(raw) for raw in payload]
    except (CacheError, ValidationError, TypeError) as exc:
        logger.error("Cannot read repo data cache: %s", exc)
        click.echo(f"repodata 캐시를 읽을 수 없습니다. 먼저 fetch를 실행하세요: {exc}", err=True)
        sys.exit(1)

    directory = _load_contacts(config)
    lists = build_email_lists(repos, directory, config.opt_in_group)
    write_email_lists(
        lists,
        config.email_output_dir,
        recipients_filename=config.email.recipients_filename,
        opt_in_filename=f"{config.opt_in_group}.txt",
    )

    click.echo("Watchlist emails: ")
    click.echo(orjson.dumps(lists.recipients, option=orjson.OPT_INDENT_2).decode())
    click.echo("Opt in emails: ")
    click.echo(orjson.dumps(lists.opt_in, option=orjson.OPT_INDENT_2).decode())
