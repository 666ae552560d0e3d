# This file is part of firstboot. See LICENSE file for license information.
"""Common utility functions for interacting with subprocess."""

import logging
import os
import subprocess
from errno import ENOEXEC
from typing import Dict, List, NamedTuple, Optional, Union

from firstboot import util

LOG = logging.getLogger(__name__)


class SubpResult(NamedTuple):
    stdout: Union[str, bytes]
    stderr: Union[str, bytes]


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

        if description:
            self.description = description
        elif not exit_code and errno == ENOEXEC:
            self.description = "Exec format error. Missing #! in script?"
        else:
            self.description = "Unexpected error while running command."

        self.exit_code = (
            exit_code if isinstance(exit_code, int) else self.empty_attr
        )
        self.stderr = self._indent_text(stderr) if stderr else self.empty_attr
        self.stdout = self._indent_text(stdout) if stdout else self.empty_attr
        self.reason = reason or self.empty_attr
        if errno:
            self.errno = errno
        message = self.MESSAGE_TMPL % {
            "description": self._ensure_string(self.description),
            "cmd": self._ensure_string(self.cmd),
            "exit_code": self._ensure_string(self.exit_code),
            "stdout": self._ensure_string(self.stdout),
            "stderr": self._ensure_string(self.stderr),
            "reason": self._ensure_string(self.reason),
        }
        IOError.__init__(self, message)

    def _ensure_string(self, text):
        """
        if data is bytes object, decode
        """
        return text.decode() if isinstance(text, bytes) else text

    def _indent_text(
        self, text: Union[str, bytes], indent_level=8
    ) -> Union[str, bytes]:
        """
        indent text on all but the first line, allowing for easy to read output
        """
        cr = "\n"
        indent = " " * indent_level
        # if input is bytes, return bytes
        if not isinstance(text, str):
            cr = cr.encode()  # type: ignore
            indent = indent.encode()  # type: ignore
        # remove any newlines at end of text first to prevent unneeded blank
        # line in output
        return text.rstrip(cr).replace(cr, cr + indent)  # type: ignore


def subp(
    args: Union[str, bytes, List[str]],
    *,
    data=None,
    rcs: Optional[List[int]] = None,
    capture: bool = True,
    timeout: Optional[float] = None,
    update_env: Optional[Dict[str, str]] = None,
    decode: bool = True,
) -> SubpResult:
    """Run a subprocess.

    :param args: command to run in a list. [cmd, arg1, arg2...]
    :param data: input to the command, made available on its stdin.
    :param rcs:
        a list of allowed return codes.  If subprocess exits with a value not
        in this list, a ProcessExecutionError will be raised.  By default,
        data is returned as a string.  See 'decode' parameter.
    :param capture:
        boolean indicating if output should be captured.  If True, then stderr
        and stdout will be returned.  If False, they will not be redirected.
    :param timeout: seconds to wait before the command is killed.
    :param update_env:
        update the environment for this command with this dictionary.
        this will not affect the current processes os.environ.
    :param decode:
        if True, stdout and stderr are decoded as utf-8 with undecodable
        bytes replaced. If False, no decoding is done and they are bytes.

    :return
        if not capturing, return is (None, None)
        if capturing, stdout and stderr are returned.
            if decode:
                entries in tuple will be string
            if not decode:
                entries in tuple will be bytes
    """
    if rcs is None:
        rcs = [0]

    env = None
    if update_env:
        env = os.environ.copy()
        env.update(update_env)

    LOG.debug(
        "Running command %s with allowed return codes %s"
        " (capture=%s)",
        args,
        rcs,
        capture,
    )

    stdin: Union[None, int] = None
    stdout = None
    stderr = None
    if capture:
        stdout = subprocess.PIPE
        stderr = subprocess.PIPE
    if data is None:
        stdin = subprocess.DEVNULL
    else:
        stdin = subprocess.PIPE
        if not isinstance(data, bytes):
            data = data.encode()

    try:
        sp = subprocess.Popen(
            args,
            stdout=stdout,
            stderr=stderr,
            stdin=stdin,
            env=env,
        )
        (out, err) = sp.communicate(data, timeout=timeout)
    except subprocess.TimeoutExpired as e:
        sp.kill()
        sp.communicate()
        raise ProcessExecutionError(
            cmd=args,
            reason=e,
            description="Command timed out after %s seconds." % timeout,
        ) from e
    except OSError as e:
        raise ProcessExecutionError(
            cmd=args,
            reason=e,
            errno=e.errno,
            exit_code=None,
        ) from e

    if decode:
        if out is not None:
            out = util.decode_binary(out)
        if err is not None:
            err = util.decode_binary(err)

    rc = sp.returncode
    if rc not in rcs:
        raise ProcessExecutionError(
            stdout=out, stderr=err, exit_code=rc, cmd=args
        )
    return SubpResult(out, err)


def which(program, search=None):
    """find program in the path, or return None if it cannot be found."""
    if os.path.sep in program:
        return program if util.is_exe(program) else None

    if search is None:
        search = os.environ.get("PATH", "").split(os.pathsep)

    for path in search:
        exe_file = os.path.join(path.strip('"'), program)
        if util.is_exe(exe_file):
            return exe_file
    return None
