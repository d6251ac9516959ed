"""공통 fixture."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pendulum
import pytest
import yaml


@pytest.fixture()
def now() -> pendulum.DateTime:
    """테스트 기준 시각 (고정)."""
    return pendulum.datetime(2024, 6, 1, 12, 0, 0, tz="UTC")


@pytest.fixture()
def sample_repo_data() -> dict[str, Any]:
    """GET /orgs/{org}/repos 항목 샘플."""
    return {
        "id": 1001,
        "name": "platform-client-sdk-javascript",
        "full_name": "MyPureCloud/platform-client-sdk-javascript",
        "html_url": "https://github.com/MyPureCloud/platform-client-sdk-javascript",
        "owner": {"login": "MyPureCloud", "avatar_url": "https://avatars.githubusercontent.com/u/1?"},
        "created_at": "2022-06-01T12:00:00Z",
        "has_issues": True,
        "default_branch": "master",
        "stargazers_count": 42,
    }


@pytest.fixture()
def repo_contacts_data() -> dict[str, Any]:
    """repo-contacts.yml 샘플."""
    return {
        "mypurecloud": {
            "platform-client-sdk-javascript": {
                "owners": ["jdoe"],
                "maintainers": ["asmith", "bwong"],
                "monitoredBranches": ["development"],
            },
            "owners-only": {"owners": ["jdoe"]},
            "empty-entry": None,
        },
        "mypurecloud-opt-in": [
            {"name": "Casey Lee", "email": "casey.lee@example.com"},
        ],
    }


@pytest.fixture()
def github_users_data() -> dict[str, Any]:
    """github-users.yml 샘플."""
    return {
        "jdoe": {"name": "Jane Doe", "email": "jane.doe@example.com"},
        "asmith": {"name": "Alex Smith", "email": "alex.smith@example.com"},
        "bwong": {"name": "Bo Wong", "email": "bo.wong@example.com"},
    }


@pytest.fixture()
def sample_config_data() -> dict[str, Any]:
    """테스트용 config dict."""
    return {
        "org": "MyPureCloud",
        "marker_file": ".opt-in",
        "github": {"per_page": 100, "max_concurrency": 4},
        "cache": {"dir": "cache", "freshness_minutes": 30},
        "output": {"dir": "output", "timezone": "US/Eastern", "versioned": True},
        "contacts": {
            "repo_contacts_path": "repo-contacts.yml",
            "github_users_path": "github-users.yml",
        },
    }


@pytest.fixture()
def tmp_config_file(
    tmp_path: Path,
    sample_config_data: dict[str, Any],
    repo_contacts_data: dict[str, Any],
    github_users_data: dict[str, Any],
    monkeypatch: pytest.MonkeyPatch,
) -> Path:
    """임시 YAML 설정 파일 + 연락처 파일."""
    monkeypatch.delenv("GITHUB_ORG", raising=False)
    monkeypatch.delenv("GITHUB_DEBUG_API", raising=False)
    (tmp_path / "repo-contacts.yml").write_text(yaml.dump(repo_contacts_data), encoding="utf-8")
    (tmp_path / "github-users.yml").write_text(yaml.dump(github_users_data), encoding="utf-8")
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.dump(sample_config_data), encoding="utf-8")
    return config_path
