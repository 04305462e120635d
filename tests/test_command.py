import errno
import os
import stat
import subprocess
from pathlib import Path
from unittest import mock

import pytest  # type: ignore

from command import execute, reap_background, resolve, is_runnable, wait_all
from main import run_line
from pipeline import parse
from status import Status


def make_tool(directory: Path, name: str, body: str = "#!/bin/sh\necho tool\n", executable: bool = True) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(body)
    mode = stat.S_IRUSR | stat.S_IWUSR
    if executable:
        mode |= stat.S_IXUSR
    path.chmod(mode)
    return path


# --- resolution ---

def test_resolve_first_match_wins(tmp_path):
    first = make_tool(tmp_path / "one", "tool")
    make_tool(tmp_path / "two", "tool")
    search = f"{tmp_path / 'one'}:{tmp_path / 'two'}"
    assert resolve("tool", search) == str(first)


def test_resolve_skips_missing_dirs(tmp_path):
    found = make_tool(tmp_path / "bin", "tool")
    search = f"{tmp_path / 'nope'}::{tmp_path / 'bin'}"
    assert resolve("tool", search) == str(found)


def test_resolve_unknown_name(tmp_path):
    assert resolve("surely_not_here", str(tmp_path)) is None
    assert resolve("tool", None) is None


def test_resolve_name_with_slash_is_taken_as_is(tmp_path):
    tool = make_tool(tmp_path, "local")
    assert resolve(str(tool), "") == str(tool)
    assert resolve(str(tmp_path / "missing"), "/bin") is None


def test_resolve_relative_slash_name_becomes_absolute(sandbox):
    tmp_path, _ = sandbox
    make_tool(tmp_path, "local")
    assert resolve("./local", "") == os.path.join(os.getcwd(), "local")


def test_is_runnable(tmp_path):
    assert is_runnable(str(make_tool(tmp_path, "x")))
    assert not is_runnable(str(make_tool(tmp_path, "y", executable=False)))
    assert not is_runnable(str(tmp_path))


# --- dispatch ---

def test_empty_name_is_success(session):
    assert execute(parse(""), session) == Status.SUCCESS


def test_exit_keyword(session):
    assert execute(parse("exit"), session) == Status.EXIT


def test_autocomplete_request_does_not_run(session, sandbox):
    tmp_path, _ = sandbox
    assert execute(parse("touch made.txt?"), session) == Status.SUCCESS
    assert not (tmp_path / "made.txt").exists()


def test_unknown_command(session, capsys):
    assert execute(parse("nonexistent_cmd"), session) == Status.UNKNOWN
    err = capsys.readouterr().err
    assert "mishell" in err
    assert "nonexistent_cmd" in err
    assert "command not found" in err


def test_non_executable_match_is_not_found(session, sandbox, capsys):
    tmp_path, _ = sandbox
    make_tool(tmp_path / "bin", "plain", executable=False)
    session.env["PATH"] = str(tmp_path / "bin")
    assert execute(parse("plain"), session) == Status.UNKNOWN
    assert "plain: command not found" in capsys.readouterr().err


def test_unknown_stage_starts_nothing(session, sandbox):
    tmp_path, _ = sandbox
    assert run_line("echo hi | no_such_stage > out.txt", session) == Status.UNKNOWN
    assert not (tmp_path / "out.txt").exists()


# --- redirection ---

def test_truncate_redirect(session, sandbox):
    tmp_path, _ = sandbox
    (tmp_path / "f.txt").write_text("old contents\n")
    assert run_line("echo hi > f.txt", session) == Status.SUCCESS
    assert (tmp_path / "f.txt").read_text() == "hi\n"


def test_truncate_creates_with_mode(session, sandbox):
    tmp_path, _ = sandbox
    old = os.umask(0o022)
    try:
        run_line("echo x >new.txt", session)
    finally:
        os.umask(old)
    assert stat.S_IMODE((tmp_path / "new.txt").stat().st_mode) == 0o644


def test_append_redirect(session, sandbox):
    tmp_path, _ = sandbox
    run_line("echo a >> log.txt", session)
    run_line("echo b >> log.txt", session)
    assert (tmp_path / "log.txt").read_text() == "a\nb\n"


def test_input_redirect(session, sandbox):
    tmp_path, _ = sandbox
    (tmp_path / "in.txt").write_text("hello\n")
    assert run_line("cat < in.txt > out.txt", session) == Status.SUCCESS
    assert (tmp_path / "out.txt").read_text() == "hello\n"


def test_missing_input_file_is_reported(session, capsys):
    assert run_line("cat < missing.txt", session) == Status.UNKNOWN
    err = capsys.readouterr().err
    assert "missing.txt" in err
    assert "mishell" in err


def test_unwritable_output_is_reported(session, sandbox, capsys):
    tmp_path, _ = sandbox
    assert run_line(f"echo hi > {tmp_path}/no/such/dir/out.txt", session) == Status.UNKNOWN
    assert "out.txt" in capsys.readouterr().err


# --- pipelines ---

def test_two_stage_pipeline(session, sandbox):
    tmp_path, _ = sandbox
    (tmp_path / "data.txt").write_text("pear\napple\nfig\n")
    assert run_line("cat data.txt | sort > sorted.txt", session) == Status.SUCCESS
    assert (tmp_path / "sorted.txt").read_text() == "apple\nfig\npear\n"


def test_three_stage_pipeline(session, sandbox):
    tmp_path, _ = sandbox
    (tmp_path / "data.txt").write_text("alpha\nbeta\ngamma\ndelta\n")
    run_line("cat data.txt | grep -v beta | wc -l > count.txt", session)
    assert (tmp_path / "count.txt").read_text().strip() == "3"


def test_interior_redirect_wins_over_pipe(session, sandbox):
    tmp_path, _ = sandbox
    run_line("echo hi > mid.txt | cat > end.txt", session)
    assert (tmp_path / "mid.txt").read_text() == "hi\n"
    assert (tmp_path / "end.txt").read_text() == ""


def test_exit_code_recorded(session):
    assert run_line("false", session) == Status.SUCCESS
    assert session.last_exit_code == 1
    run_line("true", session)
    assert session.last_exit_code == 0


def test_argument_vector_matches_direct_invocation(session, sandbox):
    tmp_path, _ = sandbox
    run_line("echo one 'two' \"three\" four > out.txt", session)
    direct = subprocess.run(["echo", "one", "two", "three", "four"], capture_output=True, text=True)
    assert (tmp_path / "out.txt").read_text() == direct.stdout


# --- background ---

def test_background_does_not_block(session, sandbox):
    tmp_path, _ = sandbox
    assert run_line("touch bg.txt &", session) == Status.SUCCESS
    assert len(session.background_jobs) == 1
    session.background_jobs[0].wait()
    assert (tmp_path / "bg.txt").exists()
    reap_background(session)
    assert session.background_jobs == []


def test_background_uses_resolved_path(session, sandbox):
    tmp_path, _ = sandbox
    make_tool(tmp_path / "bin", "writer", "#!/bin/sh\necho ran > ran.txt\n")
    session.env["PATH"] = f"{tmp_path / 'bin'}:{session.env['PATH']}"
    assert run_line("writer &", session) == Status.SUCCESS
    session.background_jobs[0].wait()
    assert (tmp_path / "ran.txt").read_text() == "ran\n"


def test_background_first_stage_does_not_read_terminal(session, sandbox):
    tmp_path, _ = sandbox
    assert run_line("cat > copy.txt &", session) == Status.SUCCESS
    assert session.background_jobs[0].wait(timeout=5) == 0
    assert (tmp_path / "copy.txt").read_text() == ""


# --- failures while starting or waiting ---

def test_exec_failure_is_reported(session, capsys):
    err = OSError(errno.ENOEXEC, "Exec format error")
    with mock.patch("command.subprocess.Popen", side_effect=err):
        assert run_line("true", session) == Status.UNKNOWN
    assert "-mishell: true: Exec format error" in capsys.readouterr().err


def test_nul_byte_in_redirect_target(session, capsys):
    assert run_line("echo hi > out\x00.txt", session) == Status.UNKNOWN
    assert "-mishell:" in capsys.readouterr().err


def test_wait_all_keeps_waiting_after_interrupt():
    proc = mock.Mock()
    proc.wait.side_effect = [KeyboardInterrupt(), 0]
    wait_all([proc])
    assert proc.wait.call_count == 2
