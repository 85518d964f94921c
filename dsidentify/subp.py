# This file is part of ds-identify. See LICENSE file for license information.
"""Common utility functions for interacting with subprocess."""

import collections
import logging
import os
import subprocess
import time
from typing import List, Optional, Union

LOG = logging.getLogger(__name__)

SubpResult = collections.namedtuple("SubpResult", ["stdout", "stderr"])

# Probes run during early boot; none of them should ever take this long.
DEFAULT_TIMEOUT = 10


class ProcessExecutionError(IOError):
    MESSAGE_TMPL = (
        "%(description)s\n"
        "Command: %(cmd)s\n"
        "Exit code: %(exit_code)s\n"
        "Reason: %(reason)s\n"
        "Stdout: %(stdout)s\n"
        "Stderr: %(stderr)s"
    )
    empty_attr = "-"

    def __init__(
        self,
        stdout=None,
        stderr=None,
        exit_code=None,
        cmd=None,
        description=None,
        reason=None,
        errno=None,
    ):
        self.cmd = cmd or self.empty_attr
        self.description = (
            description or "Unexpected error while running command."
        )
        self.exit_code = (
            exit_code if isinstance(exit_code, int) else self.empty_attr
        )
        self.stderr = self.empty_attr if stderr is None else stderr
        self.stdout = self.empty_attr if stdout is None else stdout
        self.reason = reason or self.empty_attr
        message = self.MESSAGE_TMPL % {
            "description": self.description,
            "cmd": self.cmd,
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "reason": self.reason,
        }
        IOError.__init__(self, message)
        # IOError.__init__ resets errno
        if errno:
            self.errno = errno


def subp(
    args: List[str],
    *,
    rcs=None,
    timeout=DEFAULT_TIMEOUT,
) -> SubpResult:
    """Run a subprocess and capture its output.

    :param args: command to run in a list. [cmd, arg1, arg2...]
    :param rcs:
        a list of allowed return codes.  If subprocess exits with a value not
        in this list, a ProcessExecutionError will be raised.
    :param timeout: maximum time for the subprocess to run.

    :return: SubpResult of decoded stdout and stderr.
    """
    if rcs is None:
        rcs = [0]

    LOG.debug("Running command %s with allowed return codes %s", args, rcs)
    try:
        before = time.monotonic()
        sp = subprocess.run(
            args,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            timeout=timeout,
            check=False,
        )
        total = time.monotonic() - before
        if total > 0.1:
            LOG.debug("%s took %.3ss to run", args, total)
    except subprocess.TimeoutExpired as e:
        raise ProcessExecutionError(
            cmd=args, reason="timed out after %ss" % timeout
        ) from e
    except OSError as e:
        raise ProcessExecutionError(cmd=args, reason=e, errno=e.errno) from e

    out = sp.stdout.decode("utf-8", "replace")
    err = sp.stderr.decode("utf-8", "replace")
    if sp.returncode not in rcs:
        raise ProcessExecutionError(
            stdout=out, stderr=err, exit_code=sp.returncode, cmd=args
        )
    return SubpResult(out, err)


def which(program, search=None) -> Optional[str]:
    if os.path.sep in program and is_exe(program):
        return program

    if search is None:
        search = [
            p.strip('"') for p in os.environ.get("PATH", "").split(os.pathsep)
        ]
    # normalize path input
    search = [os.path.abspath(p) for p in search if p]

    for path in search:
        ppath = os.path.sep.join((path, program))
        if is_exe(ppath):
            return ppath

    return None


def is_exe(fpath: Union[str, os.PathLike]) -> bool:
    # return boolean indicating if fpath exists and is executable.
    return os.path.isfile(fpath) and os.access(fpath, os.X_OK)
