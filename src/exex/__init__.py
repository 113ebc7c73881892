"""exex - run external commands with guaranteed stderr capture.

Environment variables:
    EXEX_CAPTURE_CHUNK_SIZE: stderr reader chunk size (default 1024)
    EXEX_LOG_DEBUG: debug logging to a temp file for the exex CLI

Usage:
    import exex

    try:
        exex.run("git", "fetch")
    except exex.ExitError as e:
        raise exex.annotate_error(e, "fetch failed")
"""

__version__ = "0.1.0"

from .annotate import annotate_error
from .cancel import CancelToken
from .cmd import (
    Cmd,
    command,
    command_with_cancellation,
    run,
    run_command,
    run_with_cancellation,
)
from .errors import (
    Cancelled,
    CommandError,
    DeadlineExceeded,
    ExecutableNotFound,
    ExexError,
    ExitError,
    LaunchError,
    UsageError,
)
from .lookup import look_path
from .runtime import ProcessRunner, ProcessSpec, run_process

__all__ = [
    "__version__",
    "Cmd",
    "command",
    "command_with_cancellation",
    "run",
    "run_command",
    "run_with_cancellation",
    "annotate_error",
    "look_path",
    "CancelToken",
    "ProcessRunner",
    "ProcessSpec",
    "run_process",
    "ExexError",
    "ExitError",
    "LaunchError",
    "Cancelled",
    "DeadlineExceeded",
    "ExecutableNotFound",
    "UsageError",
    "CommandError",
]
