"""GitHub 리소스 + 파생 필드 데이터 모델 (Pydantic).

GitHub API 원본 필드는 extra="allow"로 그대로 보존한다.
캐시(repodata.json)와 템플릿이 API가 반환한 모든 필드를 볼 수 있어야 하기 때문이다.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

RepoStatus = Literal["active", "idle", "stagnant", "inactive", "unknown"]
WatchlistType = Literal["issue", "pull_request"]


class _GitHubModel(BaseModel):
    model_config = ConfigDict(extra="allow")


class User(_GitHubModel):
    login: str
    avatar_url: str | None = None
    html_url: str | None = None


# ── 커밋 ───────────────────────────────────────────────


class CommitAuthor(_GitHubModel):
    name: str | None = None
    email: str | None = None
    date: datetime | None = None


class CommitDetail(_GitHubModel):
    message: str | None = None
    author: CommitAuthor | None = None


class Commit(_GitHubModel):
    sha: str
    html_url: str | None = None
    commit: CommitDetail = Field(default_factory=CommitDetail)
    author: User | None = None  # GitHub 계정과 연결되지 않은 커밋은 null

    @property
    def authored_at(self) -> datetime | None:
        """git author 날짜 (없으면 None)."""
        if self.commit.author is None:
            return None
        return self.commit.author.date


# ── SLA ────────────────────────────────────────────────


class SlaCheck(BaseModel):
    met: bool
    days: int


class Sla(BaseModel):
    """이슈/PR 단위 SLA 평가 결과 (항목별 독립)."""

    initial_response: SlaCheck
    activity: SlaCheck
    resolution: SlaCheck

    @property
    def met(self) -> bool:
        return self.initial_response.met and self.activity.met and self.resolution.met


# ── 이슈 / PR ──────────────────────────────────────────


class Issue(_GitHubModel):
    """GET /repos/{owner}/{repo}/issues 항목.

    - pull_request 키가 있으면 실제로는 PR (GitHub issues API가 PR을 함께 반환)
    - comments는 API 원본의 댓글 수(int)이므로 건드리지 않는다
    """

    number: int
    title: str = ""
    html_url: str | None = None
    state: str | None = None
    user: User | None = None
    created_at: datetime
    updated_at: datetime
    pull_request: dict[str, Any] | None = None
    sla: Sla | None = None

    @property
    def is_pull_request(self) -> bool:
        return self.pull_request is not None


class PullRequest(_GitHubModel):
    """GET /repos/{owner}/{repo}/pulls 항목 + 수집된 댓글/커밋."""

    number: int
    title: str = ""
    html_url: str | None = None
    state: str | None = None
    user: User | None = None
    created_at: datetime
    updated_at: datetime
    comments: list[dict[str, Any]] = Field(default_factory=list)
    commits: list[Commit] = Field(default_factory=list)
    sla: Sla | None = None


class WatchlistEntry(BaseModel):
    """SLA를 하나 이상 충족하지 못한 이슈/PR."""

    watchlist_type: WatchlistType
    number: int
    title: str
    html_url: str | None = None
    user: User | None = None
    created_at: datetime
    updated_at: datetime
    sla: Sla


# ── 연락처 ─────────────────────────────────────────────


class Contact(BaseModel):
    name: str
    email: str

    @property
    def last_name(self) -> str:
        """표시 이름의 마지막 토큰."""
        tokens = self.name.split()
        return tokens[-1] if tokens else ""


class RepositoryContacts(BaseModel):
    primary: Contact
    owners: list[Contact] = Field(default_factory=list)
    maintainers: list[Contact] = Field(default_factory=list)


# ── 저장소 ─────────────────────────────────────────────


class Repository(_GitHubModel):
    """GET /orgs/{org}/repos 항목 + 파이프라인 단계별 파생 필드.

    - 목록 조회 시 생성되고 이후 모든 단계에서 제자리 갱신된다
    - commits/pull_requests/issues/watchlist는 항상 리스트 (없으면 빈 리스트)
    """

    id: int | None = None
    name: str
    full_name: str | None = None
    html_url: str
    owner: User
    created_at: datetime
    has_issues: bool = True
    default_branch: str | None = None

    pull_requests: list[PullRequest] = Field(default_factory=list)
    commits: list[Commit] = Field(default_factory=list)
    issues: list[Issue] = Field(default_factory=list)
    watchlist: list[WatchlistEntry] = Field(default_factory=list)
    contacts: RepositoryContacts | None = None
    has_marker_file: bool | None = None

    age: str | None = None
    last_commit: Commit | None = None
    last_commit_date: datetime | None = None
    last_commit_days: int | None = None
    last_commit_age: str | None = None
    status: RepoStatus | None = None
    status_display: str | None = None
    commit_count: int = 0
    pull_request_count: int = 0
    issue_count: int = 0
    pull_requests_url: str | None = None
    issues_url: str | None = None

    @property
    def slug(self) -> str:
        return f"{self.owner.login}/{self.name}"


# ── 활동 이벤트 ────────────────────────────────────────


class Actor(_GitHubModel):
    login: str
    display_login: str | None = None
    avatar_url: str | None = None

    @property
    def handle(self) -> str:
        return self.display_login or self.login


class EventRepo(_GitHubModel):
    name: str


class ActivityEvent(_GitHubModel):
    """GET /orgs/{org}/events 항목."""

    id: str
    type: str
    actor: Actor
    repo: EventRepo | None = None
    created_at: datetime


class UserActivity(BaseModel):
    """사용자별 이벤트 묶음 + 이벤트 타입별 집계."""

    login: str
    url: str
    avatar_url: str | None = None
    events: list[ActivityEvent] = Field(default_factory=list)
    event_counts: dict[str, int] = Field(default_factory=dict)

    @property
    def event_count(self) -> int:
        return len(self.events)
