"""exex exception types.

Every error raised by exex also satisfies the matching platform check, so
existing handlers written against ``subprocess`` or ``OSError`` keep working:

- ExitError is a ``subprocess.CalledProcessError``
- ExecutableNotFound is a ``FileNotFoundError``
- DeadlineExceeded is a ``TimeoutError``

Launch failures are not wrapped: whatever ``OSError`` ``subprocess.Popen``
raises reaches the caller unchanged.
"""

from __future__ import annotations

import subprocess
from collections.abc import Sequence

__all__ = [
    "ExexError",
    "ExitError",
    "LaunchError",
    "Cancelled",
    "DeadlineExceeded",
    "ExecutableNotFound",
    "UsageError",
    "CommandError",
]


class ExexError(Exception):
    """Base class for exex errors."""
    pass


class ExitError(ExexError, subprocess.CalledProcessError):
    """The process ran and exited with a non-zero status or a signal.

    Attributes:
        returncode: Exit status (negative signal number on POSIX)
        cmd: The argv that was executed
        output: Captured stdout, only set by ``Cmd.output()``
        stderr: Captured stderr, or None when the caller owned the stream
    """

    def __init__(
        self,
        returncode: int,
        cmd: Sequence[str],
        output: bytes | None = None,
        stderr: bytes | None = None,
    ) -> None:
        subprocess.CalledProcessError.__init__(
            self, returncode, list(cmd), output=output, stderr=stderr
        )


# Popen's own OSError (FileNotFoundError, PermissionError, ...) is the
# launch failure.
LaunchError = OSError


class Cancelled(ExexError):
    """Execution was aborted through a CancelToken."""
    pass


class DeadlineExceeded(Cancelled, TimeoutError):
    """The token's deadline passed before the process finished."""
    pass


class ExecutableNotFound(ExexError, FileNotFoundError):
    """No executable with the given name exists in the search path."""
    pass


class UsageError(ExexError):
    """An exex helper was called with a value it cannot handle."""
    pass


class CommandError(ExexError):
    """A failed command annotated with a caller message.

    Attributes:
        message: Caller supplied description of the failed step
        err: The underlying exit failure
        stderr: Raw captured stderr bytes (may be None or empty)
    """

    def __init__(self, message: str, err: BaseException, stderr: bytes | None = None) -> None:
        self.message = message
        self.err = err
        self.stderr = stderr
        text = f"{message} ({err})"
        if stderr:
            text = f"{text}\n{stderr.decode('utf-8', errors='backslashreplace')}"
        super().__init__(text)
