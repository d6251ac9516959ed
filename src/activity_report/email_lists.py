"""Watchlist 수신자 목록 생성.

repodata 캐시 + 연락처 설정으로 watchlist가 있는 저장소의 담당자 목록을 만든다.
- to: maintainer 연락처 (없으면 owner), 이메일 기준 중복 제거
- cc: opt-in 그룹, "cc:" 접두어, to에 이미 있는 주소는 제외
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from activity_report.contacts import ContactDirectory
from activity_report.models import Contact, Repository

logger = logging.getLogger(__name__)

CC_PREFIX = "cc:"


@dataclass
class EmailLists:
    recipients: list[str] = field(default_factory=list)  # to + cc:...
    opt_in: list[str] = field(default_factory=list)


def _dedupe_emails(contacts: Iterable[Contact]) -> list[str]:
    emails: list[str] = []
    for contact in contacts:
        if contact.email not in emails:
            emails.append(contact.email)
    return emails


def watchlist_contacts(repo: Repository, directory: ContactDirectory) -> list[Contact]:
    """watchlist 저장소 하나의 수신 대상. 설정이 없으면 빈 리스트."""
    entry = directory.lookup(repo.owner.login, repo.name)
    if entry is None:
        logger.error("No configuration for %s!", repo.name, extra={"repo": repo.slug})
        return []

    if entry.maintainers:
        contacts: list[Contact] = []
        for maintainer in entry.maintainers:
            contact = directory.user(maintainer)
            if contact is None:
                logger.error("Failed to find contact information for maintainer %s", maintainer)
                continue
            contacts.append(contact)
        return contacts

    if entry.owners:
        logger.warning(
            "%s is on the watchlist and does not have maintainers defined! Addressing owners instead.",
            repo.name,
        )
        contacts = []
        for owner in entry.owners:
            contact = directory.user(owner)
            if contact is None:
                logger.error("Failed to find contact information for owner %s", owner)
                continue
            contacts.append(contact)
        return contacts

    logger.error("%s is on the watchlist and does not have owners or maintainers defined!", repo.name)
    return []


def build_email_lists(
    repos: Iterable[Repository], directory: ContactDirectory, opt_in_group: str,
) -> EmailLists:
    to: list[Contact] = []
    for repo in repos:
        if repo.watchlist:
            to.extend(watchlist_contacts(repo, directory))

    opt_in_members = directory.group(opt_in_group)
    if not opt_in_members:
        logger.warning("Opt-in group %s is empty or missing", opt_in_group)

    recipients = _dedupe_emails(to)
    seen = set(recipients)
    for member in opt_in_members:
        if member.email not in seen:
            seen.add(member.email)
            recipients.append(f"{CC_PREFIX}{member.email}")

    return EmailLists(recipients=recipients, opt_in=_dedupe_emails(opt_in_members))


def write_email_lists(
    lists: EmailLists,
    output_dir: Path,
    *,
    recipients_filename: str,
    opt_in_filename: str,
) -> tuple[Path, Path]:
    """쉼표로 구분된 한 줄짜리 파일 두 개를 쓴다."""
    output_dir.mkdir(parents=True, exist_ok=True)
    recipients_path = output_dir / recipients_filename
    opt_in_path = output_dir / opt_in_filename
    recipients_path.write_text(",".join(lists.recipients), encoding="utf-8")
    opt_in_path.write_text(",".join(lists.opt_in), encoding="utf-8")
    logger.info(
        "Wrote %d watchlist recipients to %s and %d opt-in recipients to %s",
        len(lists.recipients),
        recipients_path,
        len(lists.opt_in),
        opt_in_path,
    )
    return recipients_path, opt_in_path
