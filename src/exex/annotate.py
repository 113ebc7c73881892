"""Turning exit failures into user-facing errors."""

from __future__ import annotations

import subprocess
from typing import Optional, Union

from .errors import CommandError, UsageError

__all__ = ["annotate_error"]


def _find_exit_error(err: BaseException) -> Optional[subprocess.CalledProcessError]:
    """Return the first CalledProcessError on err's cause/context chain."""
    seen: set[int] = set()
    current: Optional[BaseException] = err
    while current is not None and id(current) not in seen:
        if isinstance(current, subprocess.CalledProcessError):
            return current
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return None


def annotate_error(
    err: Optional[BaseException],
    message: str,
) -> Union[CommandError, UsageError, None]:
    """Describe a failed command, appending its captured stderr.

    Args:
        err: Error raised by a Cmd (or anything chained to one), or None
        message: What the caller was trying to do

    Returns:
        None if ``err`` is None; a UsageError if no exit failure can be found
        in ``err``; otherwise a CommandError reading ``"message (err)"``, with
        the captured stderr on the following lines when there is any.
    """
    if err is None:
        return None

    exit_error = _find_exit_error(err)
    if exit_error is None:
        return UsageError("error converting error to exex.ExitError")

    stderr = exit_error.stderr
    if isinstance(stderr, str):
        stderr = stderr.encode()

    annotated = CommandError(message, err, stderr or None)
    annotated.__cause__ = err
    return annotated
