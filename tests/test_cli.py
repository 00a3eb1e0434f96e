from __future__ import annotations

import io
import subprocess
from pathlib import Path
from typing import Any, Generator

import pytest

from btx_lib_mailto import lib_mailto
from btx_lib_mailto.cli import Args, build_from_args, main, parse_args
from btx_lib_mailto.lib_mailto import LaunchContext, MailtoRequest, NoHandlerError, SystemLauncher


@pytest.fixture(autouse=True)
def _reset_conf_mailto() -> Generator[None, None, None]:  # pyright: ignore[reportUnusedFunction]
    snapshot = lib_mailto.conf.model_copy(deep=True)
    try:
        yield
    finally:
        for key, value in snapshot.model_dump().items():
            setattr(lib_mailto.conf, key, value)


class RecordingLauncher:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.requests: list[MailtoRequest] = []

    def __call__(self, request: MailtoRequest) -> None:
        self.requests.append(request)
        if self.fail:
            raise NoHandlerError("none")


# ---------------------------------------------------------------------------
# parse_args
# ---------------------------------------------------------------------------


@pytest.mark.os_agnostic
def test_when_no_arguments_are_given_the_defaults_apply() -> None:
    assert parse_args([]) == Args()


@pytest.mark.os_agnostic
def test_when_positionals_are_given_they_become_recipients() -> None:
    args = parse_args(["user1@example.com", "user2@example.com"])
    assert args.recipients == ["user1@example.com", "user2@example.com"]


@pytest.mark.os_agnostic
def test_when_cc_and_bcc_repeat_they_accumulate() -> None:
    args = parse_args(["-c", "c1@example.com", "-c", "c2@example.com", "-b", "b@example.com"])
    assert args.cc == ["c1@example.com", "c2@example.com"]
    assert args.bcc == ["b@example.com"]


@pytest.mark.os_agnostic
def test_when_subject_body_and_attachment_are_given_they_are_collected() -> None:
    args = parse_args(["-s", "Hello", "--body", "Hi", "-a", "report.pdf", "--print"])
    assert args.subject == "Hello"
    assert args.body == "Hi"
    assert args.attachment == Path("report.pdf")
    assert args.print_only is True


@pytest.mark.os_agnostic
def test_when_body_and_body_file_are_combined_the_parser_objects() -> None:
    with pytest.raises(SystemExit):
        parse_args(["--body", "x", "--body-file", "body.txt"])


# ---------------------------------------------------------------------------
# build_from_args
# ---------------------------------------------------------------------------


@pytest.mark.os_agnostic
def test_when_a_body_file_is_given_its_content_is_normalised(tmp_path: Path) -> None:
    body_file = tmp_path / "body.txt"
    body_file.write_text("one\ntwo", encoding="utf-8")

    builder = build_from_args(Args(body_file=body_file), LaunchContext())

    assert builder.body == "one\r\ntwo"


@pytest.mark.os_agnostic
def test_when_the_body_file_is_a_dash_stdin_is_read(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("sys.stdin", io.StringIO("from stdin"))

    builder = build_from_args(Args(body_file=Path("-")), LaunchContext())

    assert builder.body == "from stdin"


# ---------------------------------------------------------------------------
# main
# ---------------------------------------------------------------------------


@pytest.mark.os_agnostic
def test_when_print_is_requested_the_uri_is_written(capsys: pytest.CaptureFixture[str]) -> None:
    code = main([
        "alice@example.org",
        "-c", "bob@example.org",
        "-s", "Bug report for 'My app'",
        "--body", "Something went wrong :(",
        "--print",
    ])

    assert code == 0
    assert capsys.readouterr().out == (
        "mailto:alice@example.org?cc=bob@example.org"
        "&subject=Bug%20report%20for%20%27My%20app%27"
        "&body=Something%20went%20wrong%20%3A%28\n"
    )


@pytest.mark.os_agnostic
def test_when_a_recipient_is_invalid_it_exits_with_two(capsys: pytest.CaptureFixture[str]) -> None:
    code = main(["not-an-email", "--print"])

    assert code == 2
    assert "invalid email address" in capsys.readouterr().err


@pytest.mark.os_agnostic
def test_when_the_body_file_is_missing_it_exits_with_two(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = main(["--body-file", str(tmp_path / "missing.txt"), "--print"])

    assert code == 2
    assert "can not read body file" in capsys.readouterr().err


@pytest.mark.os_agnostic
def test_when_launching_the_context_launcher_receives_the_request() -> None:
    launcher = RecordingLauncher()

    code = main(["alice@example.org"], context=LaunchContext(launcher=launcher))

    assert code == 0
    assert [request.uri for request in launcher.requests] == ["mailto:alice@example.org"]


@pytest.mark.os_agnostic
def test_when_no_handler_exists_it_exits_with_one(capsys: pytest.CaptureFixture[str]) -> None:
    code = main(["alice@example.org"], context=LaunchContext(launcher=RecordingLauncher(fail=True)))

    assert code == 1
    assert "no application can handle" in capsys.readouterr().err


@pytest.mark.os_agnostic
def test_when_an_open_command_is_given_it_launches_with_it(monkeypatch: pytest.MonkeyPatch) -> None:
    commands: list[list[str]] = []

    class _Opener:
        def __init__(self, command: list[str], **kwargs: Any) -> None:
            commands.append(command)

        def wait(self, timeout: float | None = None) -> int:
            return 0

    monkeypatch.setattr(lib_mailto.subprocess, "Popen", _Opener)

    code = main(
        ["alice@example.org", "--open-command", "thunderbird -compose"],
        context=LaunchContext(launcher=RecordingLauncher()),
    )

    assert code == 0
    assert commands == [["thunderbird", "-compose", "mailto:alice@example.org"]]


@pytest.mark.os_agnostic
def test_when_an_open_command_is_given_the_global_conf_is_untouched(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(lib_mailto.subprocess, "Popen", _unused_popen)
    lib_mailto.conf.open_command = ["xdg-open"]

    main(["--open-command", "thunderbird -compose", "--print"])

    assert lib_mailto.conf.open_command == ["xdg-open"]
    assert SystemLauncher().config.open_command == ["xdg-open"]


@pytest.mark.os_agnostic
def test_when_info_is_requested_metadata_is_printed(capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["--info"]) == 0
    assert "btx_lib_mailto" in capsys.readouterr().out


def _unused_popen(command: list[str], **kwargs: Any) -> subprocess.Popen[bytes]:
    raise AssertionError(f"unexpected launch of {command}")
