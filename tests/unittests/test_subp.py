# This file is part of ds-identify. See LICENSE file for license information.

"""Tests for dsidentify.subp utility functions"""

import errno
import os
import stat

import pytest

from dsidentify import subp

BOGUS_COMMAND = "this-is-not-expected-to-be-a-program-name"


class TestProcessExecutionError:
    def test_defaults(self):
        err = subp.ProcessExecutionError()
        assert (
            "Unexpected error while running command.\n"
            "Command: -\n"
            "Exit code: -\n"
            "Reason: -\n"
            "Stdout: -\n"
            "Stderr: -"
        ) == str(err)

    def test_fields(self):
        err = subp.ProcessExecutionError(
            stdout="out", stderr="", exit_code=2, cmd=["blkid"]
        )
        assert 2 == err.exit_code
        assert "" == err.stderr
        assert "Command: ['blkid']" in str(err)
        assert "Exit code: 2" in str(err)

    def test_errno(self):
        err = subp.ProcessExecutionError(errno=errno.ENOENT)
        assert errno.ENOENT == err.errno


@pytest.mark.allow_subp_for("sh", BOGUS_COMMAND)
class TestSubp:
    def test_captures_stdout_and_stderr(self):
        out, err = subp.subp(["sh", "-c", "echo hi; echo oops >&2"])
        assert ("hi\n", "oops\n") == (out, err)

    def test_decode_invalid_utf8_replaces(self):
        out, _err = subp.subp(["sh", "-c", r"printf 'ab\252def'"])
        assert b"ab\xaadef".decode("utf-8", "replace") == out

    def test_rcs(self):
        with pytest.raises(subp.ProcessExecutionError) as exc:
            subp.subp(["sh", "-c", "echo nope; exit 1"])
        assert 1 == exc.value.exit_code
        assert "nope\n" == exc.value.stdout
        assert "nope\n" == subp.subp(
            ["sh", "-c", "echo nope; exit 1"], rcs=[0, 1]
        ).stdout

    def test_inherits_environment(self, monkeypatch):
        monkeypatch.setenv("FOO", "BAR")
        out, _err = subp.subp(["sh", "-c", 'echo "$FOO"'])
        assert "BAR\n" == out

    def test_stdin_is_empty(self):
        out, _err = subp.subp(["sh", "-c", "cat; echo done"])
        assert "done\n" == out

    def test_missing_command(self):
        with pytest.raises(subp.ProcessExecutionError) as exc:
            subp.subp([BOGUS_COMMAND])
        assert errno.ENOENT == exc.value.errno
        assert "-" == exc.value.exit_code

    def test_timeout(self):
        with pytest.raises(subp.ProcessExecutionError) as exc:
            subp.subp(["sh", "-c", "exec sleep 5"], timeout=0.1)
        assert "timed out after 0.1s" == exc.value.reason


class TestDisabledSubp:
    def test_subp_is_disabled_by_default(self):
        with pytest.raises(BaseException, match="Unexpectedly used subp"):
            subp.subp(["blkid"])


class TestWhich:
    @pytest.fixture
    def bindir(self, tmp_path):
        exe = tmp_path / "blkid"
        exe.write_text("#!/bin/sh\n")
        exe.chmod(exe.stat().st_mode | stat.S_IEXEC)
        (tmp_path / "notexe").write_text("")
        return tmp_path

    def test_found_in_search(self, bindir):
        assert str(bindir / "blkid") == subp.which(
            "blkid", search=[str(bindir)]
        )

    def test_not_executable(self, bindir):
        assert subp.which("notexe", search=[str(bindir)]) is None

    def test_uses_path(self, bindir, monkeypatch):
        monkeypatch.setenv("PATH", '"%s"' % bindir)
        assert str(bindir / "blkid") == subp.which("blkid")

    def test_full_path(self, bindir):
        path = str(bindir / "blkid")
        assert path == subp.which(path, search=[])

    def test_missing(self, bindir):
        assert subp.which("dmidecode", search=[str(bindir)]) is None

    def test_is_exe(self, bindir):
        assert subp.is_exe(bindir / "blkid")
        assert not subp.is_exe(bindir / "notexe")
        assert not subp.is_exe(bindir)
