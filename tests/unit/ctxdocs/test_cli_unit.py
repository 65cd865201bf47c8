from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from ctxdocs import __version__, cli
from ctxdocs.config import CheckResult, CheckStatus
from ctxdocs.exceptions import NotInitializedError

if TYPE_CHECKING:
    from pytest_mock import MockerFixture


@pytest.mark.unit
def test_parse_args_check_flags(tmp_path: Path) -> None:
    settings = cli.parse_args(
        ["--root", str(tmp_path), "--home", str(tmp_path), "check", "--strict", "--path", "src/a.ctx.md", "--global"],
    )

    assert settings.command == "check"
    assert settings.strict is True
    assert settings.path == "src/a.ctx.md"
    assert settings.global_scope is True
    assert settings.root == tmp_path


@pytest.mark.unit
def test_parse_args_splits_keywords() -> None:
    settings = cli.parse_args(["load", "--keywords", "auth,billing", "api"])

    assert settings.keywords == ["auth", "billing", "api"]


@pytest.mark.unit
def test_parse_args_validate_alias() -> None:
    assert cli.parse_args(["validate", "--fix"]).fix is True


@pytest.mark.unit
def test_parse_args_add_pattern() -> None:
    settings = cli.parse_args(["add-pattern", "docs/**/*.md", "Docs", "--global"])

    assert (settings.command, settings.pattern, settings.purpose) == ("add-pattern", "docs/**/*.md", "Docs")
    assert settings.global_scope is True


@pytest.mark.unit
def test_parse_args_version_flag(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc_info:
        cli.parse_args(["--version"])

    assert exc_info.value.code == 0
    assert __version__ in capsys.readouterr().out


@pytest.mark.unit
def test_parse_args_requires_command() -> None:
    with pytest.raises(SystemExit):
        cli.parse_args([])


@pytest.mark.unit
def test_main_reports_ctx_errors_on_stderr(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = cli.main(["--root", str(tmp_path), "--home", str(tmp_path / "home"), "sync"])

    assert exit_code == 1
    assert "Project not initialized" in capsys.readouterr().err


@pytest.mark.unit
def test_main_logs_unexpected_failures(tmp_path: Path, mocker: MockerFixture) -> None:
    mocker.patch.object(cli, "sync_project", side_effect=RuntimeError("boom"))
    mocker.patch.object(cli, "require_project_root", return_value=tmp_path)
    log = mocker.patch.object(cli, "logger")

    exit_code = cli.main(["--root", str(tmp_path), "--home", str(tmp_path), "sync"])

    assert exit_code == 1
    log.exception.assert_called_once()


@pytest.mark.unit
def test_main_dispatches_to_command(tmp_path: Path, mocker: MockerFixture) -> None:
    handler = mocker.Mock(return_value=0)
    mocker.patch.dict(cli.COMMANDS, {"refresh": handler})

    assert cli.main(["--root", str(tmp_path), "refresh"]) == 0
    assert handler.call_args.args[0].command == "refresh"


@pytest.mark.unit
def test_load_reads_hook_payload_from_stdin(tmp_path: Path, mocker: MockerFixture, capsys: pytest.CaptureFixture[str]) -> None:
    mocker.patch.object(cli, "read_stdin", return_value=json.dumps({"tool_input": {"file_path": "src/a.ctx.md"}}))
    find = mocker.patch.object(cli, "find_target_contexts")
    mocker.patch.object(cli, "resolve_read_scope").return_value.warning = None

    exit_code = cli.main(["--root", str(tmp_path), "--home", str(tmp_path), "load"])

    assert exit_code == 0
    find.assert_not_called()
    assert capsys.readouterr().out == ""


@pytest.mark.unit
def test_load_without_candidate_is_an_error(tmp_path: Path, mocker: MockerFixture, capsys: pytest.CaptureFixture[str]) -> None:
    mocker.patch.object(cli, "read_stdin", return_value="")
    mocker.patch.object(cli, "resolve_read_scope").return_value.warning = None

    exit_code = cli.main(["--root", str(tmp_path), "--home", str(tmp_path), "load"])

    assert exit_code == 1
    assert "--keywords or --target" in capsys.readouterr().err


@pytest.mark.unit
def test_check_strict_exit_code(tmp_path: Path, mocker: MockerFixture) -> None:
    mocker.patch.object(cli, "require_project_root", return_value=tmp_path)
    mocker.patch.object(cli, "check_project", return_value=CheckResult(status=CheckStatus.STALE))

    assert cli.main(["--root", str(tmp_path), "check", "--strict"]) == 1
    assert cli.main(["--root", str(tmp_path), "check"]) == 0


@pytest.mark.unit
def test_status_outside_project(tmp_path: Path, mocker: MockerFixture) -> None:
    mocker.patch.object(cli, "require_project_root", side_effect=NotInitializedError(root=tmp_path))

    assert cli.main(["--root", str(tmp_path), "status"]) == 1
