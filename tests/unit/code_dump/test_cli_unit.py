from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from code_dump import __version__, cli
from code_dump.config import OutputFormat
from code_dump.exceptions import GitCommandError, NotAGitRepositoryError
from code_dump.settings import OUTPUT_DIR_ENV

if TYPE_CHECKING:
    from pytest_mock import MockerFixture


@pytest.fixture(autouse=True)
def output_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    out = tmp_path / "Downloads"
    monkeypatch.setenv(OUTPUT_DIR_ENV, str(out))
    return out


@pytest.mark.unit
def test_parse_args_defaults(output_dir: Path) -> None:
    settings = cli.parse_args([])

    assert settings.max_kb == 200
    assert settings.file_name == "completeCodebase.md"
    assert settings.format is OutputFormat.MD
    assert settings.output_path == output_dir / "completeCodebase.md"


@pytest.mark.unit
def test_parse_args_accepts_both_flag_forms_last_wins() -> None:
    settings = cli.parse_args(["--maxKB", "50", "--maxKB=250", "--fileName", "first", "--fileName=dump"])

    assert settings.max_kb == 250
    assert settings.file_name == "dump.md"


@pytest.mark.unit
@pytest.mark.parametrize("value", ["abc", "0", "-3", "nan", "inf", ""])
def test_parse_args_ignores_bad_max_kb(value: str) -> None:
    settings = cli.parse_args(["--maxKB=75", f"--maxKB={value}"])

    assert settings.max_kb == 75


@pytest.mark.unit
def test_parse_args_trailing_flag_without_value_is_ignored() -> None:
    settings = cli.parse_args(["--maxKB=12", "--maxKB"])

    assert settings.max_kb == 12


@pytest.mark.unit
def test_parse_args_ignores_unknown_format_and_arguments() -> None:
    settings = cli.parse_args(["--format=txt", "--format", "pdf", "--verbose", "stray"])

    assert settings.format is OutputFormat.TXT
    assert settings.file_name == "completeCodebase.txt"


@pytest.mark.unit
def test_parse_args_rejects_abbreviated_flags() -> None:
    settings = cli.parse_args(["--maxK=5", "--file=dump"])

    assert settings.max_kb == 200
    assert settings.file_name == "completeCodebase.md"


@pytest.mark.unit
def test_parse_args_log_file() -> None:
    assert cli.parse_args(["--log-file", "run.log"]).log_file == "run.log"


@pytest.mark.unit
@pytest.mark.parametrize(
    ("file_name", "fmt", "expected"),
    [
        (None, None, ("completeCodebase.md", OutputFormat.MD)),
        (None, OutputFormat.TXT, ("completeCodebase.txt", OutputFormat.TXT)),
        ("dump", None, ("dump.md", OutputFormat.MD)),
        ("dump", OutputFormat.TXT, ("dump.txt", OutputFormat.TXT)),
        ("notes.TXT", None, ("notes.TXT", OutputFormat.TXT)),
        ("notes.markdown", None, ("notes.markdown", OutputFormat.MD)),
        ("notes.txt", OutputFormat.MD, ("notes.txt", OutputFormat.MD)),
        ("archive.log", None, ("archive.log.md", OutputFormat.MD)),
        ("../../etc/passwd", None, ("passwd.md", OutputFormat.MD)),
        ("..\\evil\\dump.txt", None, ("dump.txt", OutputFormat.TXT)),
        ("/", None, ("completeCodebase.md", OutputFormat.MD)),
        ("..", None, ("completeCodebase.md", OutputFormat.MD)),
    ],
)
def test_resolve_output_name(
    file_name: str | None,
    fmt: OutputFormat | None,
    expected: tuple[str, OutputFormat],
) -> None:
    assert cli.resolve_output_name(file_name, fmt) == expected


@pytest.mark.unit
def test_main_version_flag(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["--version"])

    assert exc_info.value.code == 0
    assert __version__ in capsys.readouterr().out


@pytest.mark.unit
def test_main_help_flag(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["-h"])

    assert exc_info.value.code == 0
    assert "usage: code-dump" in capsys.readouterr().out


@pytest.mark.unit
def test_main_outside_work_tree_exits_1(
    mocker: MockerFixture,
    tmp_path: Path,
    output_dir: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    mocker.patch.object(cli, "ensure_git_work_tree", side_effect=NotAGitRepositoryError(folder=tmp_path))
    listing = mocker.patch.object(cli, "git_ls_files")

    assert cli.main([]) == 1

    listing.assert_not_called()
    err = capsys.readouterr().err
    assert "Not inside a Git repository" in err
    assert str(tmp_path) in err
    assert not output_dir.exists()


@pytest.mark.unit
def test_main_listing_failure_exits_1(
    mocker: MockerFixture,
    output_dir: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    mocker.patch.object(cli, "ensure_git_work_tree")
    mocker.patch.object(
        cli,
        "git_ls_files",
        side_effect=GitCommandError(command="git ls-files", returncode=128, stdout="", stderr="fatal: bad index"),
    )

    assert cli.main([]) == 1

    assert "fatal: bad index" in capsys.readouterr().err
    assert not output_dir.exists()


@pytest.mark.unit
def test_main_nothing_matched_exits_0(
    mocker: MockerFixture,
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    output_dir: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.chdir(tmp_path)
    mocker.patch.object(cli, "ensure_git_work_tree")
    mocker.patch.object(cli, "git_ls_files", return_value=["logo.png", "yarn.lock"])

    assert cli.main([]) == 0

    out = capsys.readouterr().out
    assert "No matching files found under current rules." in out
    assert "Disallowed extensions: (none)" in out
    assert "Max size: 200KB" in out
    assert " - logo.png  -> not in allowed extensions" in out
    assert " - yarn.lock  -> disallowed basename" in out
    assert not output_dir.exists()


@pytest.mark.unit
def test_main_interrupt_returns_130(
    mocker: MockerFixture,
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / "a.py").write_text("x = 1\n", encoding="utf-8")
    mocker.patch.object(cli, "ensure_git_work_tree")
    mocker.patch.object(cli, "git_ls_files", return_value=["a.py"])
    mocker.patch.object(cli, "write_document", side_effect=KeyboardInterrupt)

    assert cli.main([]) == cli.INTERRUPTED_EXIT_CODE == 130
