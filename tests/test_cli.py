"""CLI 통합 테스트."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import pendulum
import pytest
from click.testing import CliRunner

from activity_report.cache import ACTIVITY_DATA, REPO_DATA, CacheStore
from activity_report.cli import EXIT_PIPELINE_FAILURE, main
from activity_report.github_api import GitHubApiError
from activity_report.metadata import derive_repository_metadata
from activity_report.models import Repository
from activity_report.sla import apply_sla


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    """setup_logging이 붙인 핸들러 정리 (CliRunner 스트림은 invoke 후 닫힌다)."""
    yield
    logger = logging.getLogger("activity_report")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


@pytest.fixture()
def warm_cache(tmp_config_file: Path, sample_repo_data: dict[str, Any]) -> CacheStore:
    """방금 저장된 repodata + activityData 캐시."""
    now = pendulum.now("UTC")
    stale = now.subtract(days=40).isoformat()
    repo = Repository.model_validate(
        {
            **sample_repo_data,
            "issues": [
                {
                    "number": 3,
                    "title": "Docs are out of date",
                    "created_at": stale,
                    "updated_at": stale,
                }
            ],
        }
    )
    derive_repository_metadata(repo, now)
    apply_sla(repo, now)

    store = CacheStore(tmp_config_file.parent / "cache")
    store.save(REPO_DATA, [repo.model_dump(mode="json")], now)
    store.save(
        ACTIVITY_DATA,
        [
            {
                "id": "1",
                "type": "PushEvent",
                "actor": {"login": "octocat"},
                "created_at": now.subtract(days=1).isoformat(),
            }
        ],
        now,
    )
    return store


class FailingClient:
    """저장소 목록 조회가 항상 실패하는 클라이언트."""

    request_count = 1

    def __init__(self) -> None:
        self.closed = False

    async def list_org_repos(self, org: str) -> list[dict[str, Any]]:
        raise GitHubApiError(401, "Bad credentials", f"/orgs/{org}/repos")

    async def aclose(self) -> None:
        self.closed = True


class TestMain:
    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_empty_config_is_usage_error(self, runner: CliRunner, tmp_path: Path) -> None:
        config_path = tmp_path / "config.yaml"
        config_path.write_text("", encoding="utf-8")

        result = runner.invoke(main, ["fetch", "--config", str(config_path)])

        assert result.exit_code == 2

    def test_broken_contacts_file_is_usage_error(
        self, runner: CliRunner, tmp_config_file: Path, warm_cache: CacheStore,
    ) -> None:
        """연락처 YAML이 깨져 있으면 traceback 대신 사용법 오류로 끝난다."""
        (tmp_config_file.parent / "repo-contacts.yml").write_text(
            "{{invalid: yaml: content", encoding="utf-8",
        )

        for command in ("fetch", "generate", "email-lists"):
            result = runner.invoke(main, [command, "--config", str(tmp_config_file)])

            assert result.exit_code == 2, command
            assert "연락처 파일을 읽을 수 없습니다" in result.output

    def test_missing_contacts_file_is_usage_error(
        self, runner: CliRunner, tmp_config_file: Path,
    ) -> None:
        (tmp_config_file.parent / "github-users.yml").unlink()

        result = runner.invoke(main, ["fetch", "--config", str(tmp_config_file)])

        assert result.exit_code == 2

    @patch("activity_report.cli.GitHubApiClient")
    def test_debug_flag_enables_request_logging(
        self,
        mock_client_cls: MagicMock,
        runner: CliRunner,
        tmp_config_file: Path,
    ) -> None:
        mock_client_cls.return_value = FailingClient()

        runner.invoke(
            main, ["fetch", "--config", str(tmp_config_file), "--force-refresh", "--debug"],
        )

        github_config = mock_client_cls.call_args.args[0]
        assert github_config.debug is True
        assert logging.getLogger("activity_report").level == logging.DEBUG


class TestGenerateCommand:
    """generate 명령 테스트."""

    def test_generate_from_fresh_cache(
        self,
        runner: CliRunner,
        tmp_config_file: Path,
        warm_cache: CacheStore,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)

        result = runner.invoke(main, ["generate", "--config", str(tmp_config_file)])

        assert result.exit_code == 0, result.output
        assert "Generated 4 reports for 1 repos" in result.output
        latest = tmp_config_file.parent / "output" / "latest"
        assert "Docs are out of date" in (latest / "watchlist-report.html").read_text()
        assert "octocat" in (latest / "activity-report.html").read_text()

    @patch("activity_report.cli.GitHubApiClient")
    def test_generate_api_failure_exit_code(
        self,
        mock_client_cls: MagicMock,
        runner: CliRunner,
        tmp_config_file: Path,
    ) -> None:
        client = FailingClient()
        mock_client_cls.return_value = client

        result = runner.invoke(main, ["generate", "--config", str(tmp_config_file)])

        assert result.exit_code == EXIT_PIPELINE_FAILURE
        assert client.closed is True
        assert not (tmp_config_file.parent / "cache" / "repodata.json").exists()
        assert not (tmp_config_file.parent / "output").exists()

    def test_generate_missing_token_exit_code(
        self,
        runner: CliRunner,
        tmp_config_file: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)

        result = runner.invoke(main, ["generate", "--config", str(tmp_config_file)])

        assert result.exit_code == EXIT_PIPELINE_FAILURE


class TestFetchCommand:
    """fetch 명령 테스트."""

    def test_fetch_uses_fresh_cache(
        self,
        runner: CliRunner,
        tmp_config_file: Path,
        warm_cache: CacheStore,
    ) -> None:
        result = runner.invoke(
            main, ["fetch", "--config", str(tmp_config_file), "--no-json-log"],
        )

        assert result.exit_code == 0, result.output
        assert "Fetch complete: repos=1 (cache), events=1, requests=0" in result.output

    @patch("activity_report.cli.GitHubApiClient")
    def test_force_refresh_hits_api(
        self,
        mock_client_cls: MagicMock,
        runner: CliRunner,
        tmp_config_file: Path,
        warm_cache: CacheStore,
    ) -> None:
        mock_client_cls.return_value = FailingClient()

        result = runner.invoke(
            main, ["fetch", "--config", str(tmp_config_file), "--force-refresh"],
        )

        assert result.exit_code == EXIT_PIPELINE_FAILURE
        mock_client_cls.assert_called_once()


class TestEmailListsCommand:
    """email-lists 명령 테스트."""

    def test_writes_lists(
        self,
        runner: CliRunner,
        tmp_config_file: Path,
        warm_cache: CacheStore,
    ) -> None:
        result = runner.invoke(main, ["email-lists", "--config", str(tmp_config_file)])

        assert result.exit_code == 0, result.output
        assert "Watchlist emails:" in result.output
        cache_dir = tmp_config_file.parent / "cache"
        assert (cache_dir / "watchlist-emails.txt").read_text() == (
            "alex.smith@example.com,bo.wong@example.com,cc:casey.lee@example.com"
        )
        assert (cache_dir / "mypurecloud-opt-in.txt").read_text() == "casey.lee@example.com"

    def test_missing_cache(self, runner: CliRunner, tmp_config_file: Path) -> None:
        result = runner.invoke(main, ["email-lists", "--config", str(tmp_config_file)])

        assert result.exit_code == 1
        assert not (tmp_config_file.parent / "cache" / "watchlist-emails.txt").exists()
