"""exex command line.

Runs a program, and when it fails prints what it wrote to stderr together
with the exit status:

    exex --message "build failed" -- make all
"""

from __future__ import annotations

import argparse
import logging
import shlex
import sys
from pathlib import Path

import anyio

from . import __version__
from .annotate import annotate_error
from .cancel import CancelToken
from .cmd import command_with_cancellation
from .config import Config, get_config
from .errors import Cancelled, ExecutableNotFound, ExitError
from .lookup import look_path
from .runtime import ProcessRunner, ProcessSpec

__all__ = ["main"]

logger = logging.getLogger(__name__)

EXIT_CANCELLED = 124
EXIT_NOT_EXECUTABLE = 126
EXIT_NOT_FOUND = 127


def _configure_logging(config: Config) -> None:
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # Third-party loggers stay at WARNING
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    logging.getLogger("exex").setLevel(log_level)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="exex",
        description="Run a program and report its stderr if it fails.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--cwd", type=Path, default=None, help="Working directory")
    parser.add_argument(
        "--timeout", type=float, default=None, help="Cancel the program after SECONDS"
    )
    parser.add_argument(
        "--message", default=None, help="Message printed in front of the failure"
    )
    parser.add_argument(
        "--async",
        dest="use_async",
        action="store_true",
        help="Run through the anyio process runner",
    )
    parser.add_argument("command", nargs=argparse.REMAINDER, help="Program and arguments")
    return parser


def _exit_code(err: ExitError) -> int:
    """Map a child's status to ours (128+N for signal N)."""
    if err.returncode < 0:
        return 128 - err.returncode
    return err.returncode


async def _run_async(spec: ProcessSpec, timeout: float | None) -> None:
    cancel_scope = None
    if timeout is not None:
        cancel_scope = anyio.CancelScope(deadline=anyio.current_time() + timeout)
    await ProcessRunner().run(spec, cancel_scope=cancel_scope)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    config = get_config()
    _configure_logging(config)

    parser = _build_parser()
    args = parser.parse_args(argv)

    argv_ = list(args.command)
    if argv_ and argv_[0] == "--":
        argv_ = argv_[1:]
    if not argv_:
        parser.error("missing program to run")

    message = args.message or f"{shlex.join(argv_)} failed"

    try:
        argv_[0] = look_path(argv_[0])
        logger.debug(f"Resolved executable: {argv_[0]}")

        if args.use_async:
            spec = ProcessSpec(argv=argv_, cwd=args.cwd)
            anyio.run(_run_async, spec, args.timeout)
        else:
            token = CancelToken.with_timeout(args.timeout) if args.timeout is not None else None
            cmd = command_with_cancellation(token, *argv_)
            cmd.cwd = args.cwd
            cmd.run()

    except ExitError as e:
        print(annotate_error(e, message), file=sys.stderr)
        return _exit_code(e)

    except Cancelled as e:
        print(f"{message} ({e})", file=sys.stderr)
        return EXIT_CANCELLED

    except ExecutableNotFound as e:
        print(f"exex: {e.filename}: {e.strerror}", file=sys.stderr)
        return EXIT_NOT_FOUND

    except OSError as e:
        print(f"exex: {e}", file=sys.stderr)
        return EXIT_NOT_EXECUTABLE

    return 0


if __name__ == "__main__":
    sys.exit(main())
