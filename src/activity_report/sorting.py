"""리포트별 저장소 정렬."""

from __future__ import annotations

from collections.abc import Callable, Sequence

from activity_report.config import ContactConfig
from activity_report.models import Contact, Repository


def sort_by_last_commit(repos: Sequence[Repository]) -> list[Repository]:
    """최근 커밋이 최신인 순. 커밋 이력이 없는 저장소는 맨 뒤."""
    with_commits = [r for r in repos if r.last_commit_date is not None]
    without_commits = [r for r in repos if r.last_commit_date is None]
    with_commits.sort(key=lambda r: r.last_commit_date, reverse=True)
    return with_commits + without_commits


def sort_by_primary_contact(
    repos: Sequence[Repository], default_contact: ContactConfig,
) -> list[Repository]:
    """primary 연락처 성(이름의 마지막 토큰) 오름차순. 대소문자 구분."""
    fallback = Contact(name=default_contact.name, email=default_contact.email)

    def last_name(repo: Repository) -> str:
        contact = repo.contacts.primary if repo.contacts else fallback
        return contact.last_name

    return sorted(repos, key=last_name)


def sorter_for(order: str, default_contact: ContactConfig) -> Callable[[Sequence[Repository]], list[Repository]]:
    """설정의 sort 값("last_commit" | "primary_contact")에 맞는 정렬 함수."""
    if order == "primary_contact":
        return lambda repos: sort_by_primary_contact(repos, default_contact)
    if order == "last_commit":
        return sort_by_last_commit
    raise ValueError(f"Unknown sort order: {order}")
