"""YAML 설정 로딩 + Pydantic 모델."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

_DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config.yaml"


# ── 설정 모델 ──────────────────────────────────────────


class GitHubApiConfig(BaseModel):
    base_url: str = "https://api.github.com"
    token_env_var: str = "GITHUB_TOKEN"
    per_page: int = Field(default=100, ge=1, le=100)
    request_timeout_sec: float | None = None  # None = 타임아웃 없음
    max_concurrency: int = Field(default=20, ge=1)
    rate_limit_warn_threshold: int = 100
    debug: bool = False
    user_agent: str = "activity-report/0.1.0"


class CacheConfig(BaseModel):
    dir: Path = Path("cache")
    freshness_minutes: int = Field(default=30, ge=0)


class OutputConfig(BaseModel):
    dir: Path = Path("output")
    templates_dir: Path | None = None  # None = 패키지 내장 templates/
    timezone: str = "US/Eastern"
    versioned: bool = True


class ContactsConfig(BaseModel):
    repo_contacts_path: Path = Path("data/repo-contacts.yml")
    github_users_path: Path = Path("data/github-users.yml")


class SlaConfig(BaseModel):
    initial_response_days: int = 3
    activity_days: int = 5
    resolution_days: int = 28


class EventsConfig(BaseModel):
    enabled: bool = True
    max_pages: int = Field(default=10, ge=1)
    range_days: int = Field(default=365, ge=1)


class EmailConfig(BaseModel):
    output_dir: Path | None = None  # None = cache.dir
    opt_in_group: str | None = None  # None = "<org>-opt-in"
    recipients_filename: str = "watchlist-emails.txt"


class ContactConfig(BaseModel):
    name: str
    email: str


class ReportConfig(BaseModel):
    template: str
    output: str
    sort: Literal["last_commit", "primary_contact"] = "last_commit"


def _default_reports() -> list[ReportConfig]:
    return [
        ReportConfig(template="repo-status-report.html.j2", output="repo-status-report.html"),
        ReportConfig(
            template="repo-status-report-email.html.j2",
            output="repo-status-report-email.html",
        ),
        ReportConfig(
            template="watchlist-report.html.j2",
            output="watchlist-report.html",
            sort="primary_contact",
        ),
        ReportConfig(template="activity-report.html.j2", output="activity-report.html"),
    ]


class AppConfig(BaseModel):
    """애플리케이션 전체 설정."""

    org: str = Field(min_length=1)
    marker_file: str = ".opt-in"
    github: GitHubApiConfig = Field(default_factory=GitHubApiConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    contacts: ContactsConfig = Field(default_factory=ContactsConfig)
    sla: SlaConfig = Field(default_factory=SlaConfig)
    events: EventsConfig = Field(default_factory=EventsConfig)
    email: EmailConfig = Field(default_factory=EmailConfig)
    reports: list[ReportConfig] = Field(default_factory=_default_reports)
    default_contact: ContactConfig = Field(
        default_factory=lambda: ContactConfig(
            name="Open Source Program Office", email="opensource@example.com"
        )
    )

    @field_validator("org")
    @classmethod
    def org_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("org must not be blank")
        return v.strip()

    @property
    def opt_in_group(self) -> str:
        return self.email.opt_in_group or f"{self.org.lower()}-opt-in"

    @property
    def email_output_dir(self) -> Path:
        return self.email.output_dir or self.cache.dir


# ── 로딩 ───────────────────────────────────────────────


def _resolve_paths(config: AppConfig, base_dir: Path) -> AppConfig:
    """상대 경로를 설정 파일 기준 절대 경로로 변환한다."""

    def resolve(p: Path) -> Path:
        return p if p.is_absolute() else (base_dir / p)

    config.cache.dir = resolve(config.cache.dir)
    config.output.dir = resolve(config.output.dir)
    if config.output.templates_dir is not None:
        config.output.templates_dir = resolve(config.output.templates_dir)
    config.contacts.repo_contacts_path = resolve(config.contacts.repo_contacts_path)
    config.contacts.github_users_path = resolve(config.contacts.github_users_path)
    if config.email.output_dir is not None:
        config.email.output_dir = resolve(config.email.output_dir)
    return config


def load_config(path: Path | None = None) -> AppConfig:
    """YAML 설정 파일을 로딩하고 Pydantic 모델로 검증한다.

    환경변수 우선순위: 시스템 환경변수 > .env 파일 > config.yaml 기본값
    상대 경로(cache.dir, output.dir, contacts.*)는 설정 파일 위치 기준으로 해석한다.
    """
    config_path = path or _DEFAULT_CONFIG_PATH

    # .env 파일 로딩: config.yaml과 같은 디렉터리의 .env를 탐색
    dotenv_path = config_path.parent / ".env"
    load_dotenv(dotenv_path=dotenv_path, override=False)

    with open(config_path) as f:
        raw = yaml.safe_load(f)

    if raw is None:
        raise ValueError(f"Empty config file: {config_path}")

    # 환경변수 오버라이드
    if org := os.environ.get("GITHUB_ORG"):
        raw["org"] = org

    if os.environ.get("GITHUB_DEBUG_API", "").lower() == "true":
        raw.setdefault("github", {})
        raw["github"]["debug"] = True

    config = AppConfig.model_validate(raw)
    return _resolve_paths(config, config_path.resolve().parent)
