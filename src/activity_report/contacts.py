"""저장소 담당자 연락처 해석.

정적 YAML 두 개를 사용한다.
- repo-contacts.yml: org → repo → {owners, maintainers, monitoredBranches}
  리스트 값을 가진 최상위 키는 opt-in 그룹 (예: mypurecloud-opt-in: [{name, email}, ...])
- github-users.yml: user-id → {name, email}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

from activity_report.config import ContactConfig, ContactsConfig
from activity_report.models import Contact, Repository, RepositoryContacts

logger = logging.getLogger(__name__)


class RepoContactEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    owners: list[str] = Field(default_factory=list)
    maintainers: list[str] = Field(default_factory=list)
    monitored_branches: list[str] = Field(default_factory=list, alias="monitoredBranches")


@dataclass
class ContactDirectory:
    """연락처 설정 (프로세스 시작 시 한 번 로딩)."""

    repos: dict[str, dict[str, RepoContactEntry]] = field(default_factory=dict)
    groups: dict[str, list[Contact]] = field(default_factory=dict)
    users: dict[str, Contact] = field(default_factory=dict)

    def lookup(self, owner: str, repo: str) -> RepoContactEntry | None:
        """owner는 대소문자 무시, repo 이름은 정확히 일치해야 한다."""
        return self.repos.get(owner.lower(), {}).get(repo)

    def user(self, user_id: str) -> Contact | None:
        return self.users.get(user_id)

    def group(self, name: str) -> list[Contact]:
        return self.groups.get(name, [])

    def monitored_branches(self, owner: str, repo: str) -> list[str]:
        entry = self.lookup(owner, repo)
        return list(entry.monitored_branches) if entry else []


# ── 로딩 ───────────────────────────────────────────────


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        logger.warning("Contacts file not found: %s", path)
        return {}
    with open(path, encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    return raw if isinstance(raw, dict) else {}


def parse_contacts(repo_contacts: dict[str, Any], github_users: dict[str, Any]) -> ContactDirectory:
    """YAML에서 읽은 dict를 ContactDirectory로 변환한다."""
    directory = ContactDirectory()

    for key, value in repo_contacts.items():
        if isinstance(value, list):
            directory.groups[str(key)] = [Contact.model_validate(m) for m in value]
        elif isinstance(value, dict):
            directory.repos[str(key).lower()] = {
                str(repo): RepoContactEntry.model_validate(entry or {})
                for repo, entry in value.items()
            }

    for user_id, info in github_users.items():
        info = info or {}
        directory.users[str(user_id)] = Contact(
            name=info.get("name") or str(user_id),
            email=info.get("email") or str(user_id),
        )

    return directory


def load_contacts(config: ContactsConfig) -> ContactDirectory:
    """repo-contacts.yml + github-users.yml 로딩."""
    directory = parse_contacts(
        _load_yaml(config.repo_contacts_path),
        _load_yaml(config.github_users_path),
    )
    logger.info(
        "Loaded contacts: %d orgs, %d groups, %d users",
        len(directory.repos),
        len(directory.groups),
        len(directory.users),
    )
    return directory


# ── 해석 ───────────────────────────────────────────────


def resolve_contact(directory: ContactDirectory, user_id: str) -> Contact:
    """사용자 디렉터리에서 찾고, 없으면 id를 이름/주소로 쓰는 placeholder를 반환한다."""
    contact = directory.user(user_id)
    if contact is None:
        logger.warning("Failed to find contact information for %s", user_id)
        return Contact(name=user_id, email=user_id)
    return contact


def resolve_repository_contacts(
    repo: Repository,
    directory: ContactDirectory,
    default_contact: ContactConfig,
) -> RepositoryContacts | None:
    """primary = 첫 maintainer → 첫 owner → 기본 연락처.

    연락처 설정에 없는 저장소는 None (연락처 기반 작업에서 제외).
    """
    entry = directory.lookup(repo.owner.login, repo.name)
    if entry is None:
        logger.warning("No contact configuration for %s", repo.slug, extra={"repo": repo.slug})
        return None

    maintainers = [resolve_contact(directory, m) for m in entry.maintainers]
    owners = [resolve_contact(directory, o) for o in entry.owners]

    if maintainers:
        primary = maintainers[0]
    elif owners:
        primary = owners[0]
    else:
        primary = Contact(name=default_contact.name, email=default_contact.email)

    return RepositoryContacts(primary=primary, owners=owners, maintainers=maintainers)
