"""Command execution that always captures stderr on failure.

``subprocess.run`` only fills ``CalledProcessError.stderr`` when the caller
asks for ``capture_output=True``, which also buffers all of stdout. ``Cmd``
captures stderr alone, and only when the caller has not routed it
somewhere else. Every ExitError raised by a command whose stderr was left unset
carries the complete error stream, untruncated.

As with ``subprocess.Popen``, a Cmd runs once; build a new one to run again.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import IO, Any, Optional, Union

from .cancel import CancelToken
from .config import get_config
from .errors import ExitError
from .runtime.process_runner import ProcessSpec

__all__ = [
    "Cmd",
    "command",
    "command_with_cancellation",
    "run_command",
    "run",
    "run_with_cancellation",
]

logger = logging.getLogger(__name__)

# Initial capture buffer size; most failing tools write less than this.
SINK_CAPACITY = 1024


class _CaptureSink:
    """In-memory stderr buffer filled by a reader thread.

    The buffer starts at a fixed capacity and doubles when a read would not
    fit; ``_size`` marks how much of it holds data.
    """

    def __init__(self, chunk_size: int, capacity: int = SINK_CAPACITY) -> None:
        self._chunk_size = chunk_size
        self._buffer = bytearray(capacity)
        self._size = 0
        self._thread: Optional[threading.Thread] = None

    def attach(self, stream: IO[bytes]) -> None:
        self._thread = threading.Thread(
            target=self._drain,
            args=(stream,),
            name="exex-stderr",
            daemon=True,
        )
        self._thread.start()

    def _drain(self, stream: IO[bytes]) -> None:
        with stream:
            while True:
                self._reserve(self._chunk_size)
                end = self._size + self._chunk_size
                with memoryview(self._buffer) as view, view[self._size:end] as window:
                    n = stream.readinto1(window)  # type: ignore[attr-defined]
                if not n:
                    break
                self._size += n

    def _reserve(self, n: int) -> None:
        free = len(self._buffer) - self._size
        if free < n:
            self._buffer.extend(bytes(max(len(self._buffer), n - free)))

    def close(self) -> None:
        """Wait for the reader to hit EOF."""
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def getvalue(self) -> bytes:
        return bytes(self._buffer[: self._size])


@dataclass(eq=False)
class Cmd:
    """An external command, prepared but not yet run.

    The stream fields accept anything ``subprocess.Popen`` accepts and are
    passed through untouched. Leave ``stderr`` as None to have it captured
    into ExitError.stderr on failure.

    Attributes:
        args: Program followed by its arguments
        cwd: Working directory (None = inherit)
        env: Environment (None = inherit)
        stdin: stdin source
        stdout: stdout destination
        stderr: stderr destination (None = capture)
        token: Optional CancelToken; cancelling it kills the process
        process: The Popen handle, set by start()
    """

    args: list[str]
    cwd: Union[str, os.PathLike[str], None] = None
    env: Optional[Mapping[str, str]] = None
    stdin: Any = None
    stdout: Any = None
    stderr: Any = None
    token: Optional[CancelToken] = None
    process: Optional[subprocess.Popen[bytes]] = field(default=None, init=False, repr=False)

    _capture: Optional[_CaptureSink] = field(default=None, init=False, repr=False)
    _unsubscribe: Optional[Callable[[], None]] = field(default=None, init=False, repr=False)
    _interrupted: bool = field(default=False, init=False, repr=False)
    _waited: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        self.args = list(self.args)
        if not self.args:
            raise ValueError("exex: empty command")

    @classmethod
    def from_spec(cls, spec: ProcessSpec) -> "Cmd":
        """Build a Cmd from a caller-built ProcessSpec.

        ``spec.stdin_bytes`` is not part of the Cmd; pass it to ``run(input=...)``.
        """
        return cls(
            list(spec.argv),
            cwd=spec.cwd,
            env=spec.env,
            stdout=spec.stdout,
            stderr=spec.stderr,
        )

    @property
    def path(self) -> str:
        """The program to run."""
        return self.args[0]

    def __str__(self) -> str:
        return shlex.join(self.args)

    def run(self, input: Optional[bytes] = None) -> None:
        """Start the command and wait for it to finish.

        Args:
            input: Optional bytes written to the child's stdin, which is then closed

        Raises:
            ExitError: Non-zero exit; ``stderr`` holds the error stream unless
                the caller set ``self.stderr``
            Cancelled: The token fired before the process finished
            OSError: The process could not be started
        """
        if input is not None:
            if self.stdin is not None:
                raise ValueError("stdin and input arguments may not both be used.")
            self.stdin = subprocess.PIPE

        self.start()
        if input is not None:
            try:
                self._feed(input)
            except BaseException:
                self._abort()
                raise
        self.wait()

    def start(self) -> None:
        """Start the command without waiting for it to finish.

        After start() the Popen handle is available as ``self.process`` so the
        caller can use ``process.stdin``/``process.stdout`` pipes it asked for.
        """
        if self.process is not None:
            raise RuntimeError("exex: already started")

        token = self.token
        if token is not None and token.cancelled:
            raise token.error

        capture = None
        stderr = self.stderr
        if stderr is None:
            capture = _CaptureSink(get_config().capture_chunk_size)
            stderr = subprocess.PIPE

        self.process = subprocess.Popen(
            self.args,
            cwd=self.cwd,
            env=dict(self.env) if self.env is not None else None,
            stdin=self.stdin,
            stdout=self.stdout,
            stderr=stderr,
        )

        logger.debug(
            f"Started subprocess pid={self.process.pid} "
            f"argv={self.path} capture={capture is not None}"
        )

        if capture is not None:
            capture.attach(self.process.stderr)
            self._capture = capture

        if token is not None:
            self._unsubscribe = token.add_callback(self._interrupt)

    def wait(self) -> None:
        """Wait for a started command to exit.

        Raises the same errors as run().
        """
        self._finish()

    def output(self) -> bytes:
        """Run the command and return its stdout.

        On failure the ExitError carries both ``output`` and ``stderr``.
        """
        if self.stdout is not None:
            raise ValueError("exex: stdout already set")
        self.stdout = subprocess.PIPE

        self.start()
        return self._collect_stdout()

    def combined_output(self) -> bytes:
        """Run the command and return stdout and stderr interleaved."""
        if self.stdout is not None:
            raise ValueError("exex: stdout already set")
        if self.stderr is not None:
            raise ValueError("exex: stderr already set")
        self.stdout = subprocess.PIPE
        self.stderr = subprocess.STDOUT

        self.start()
        return self._collect_stdout()

    def _started(self) -> subprocess.Popen[bytes]:
        if self.process is None:
            raise RuntimeError("exex: not started")
        return self.process

    def _collect_stdout(self) -> bytes:
        stdout = self._started().stdout
        if stdout is None:
            raise RuntimeError("exex: stdout is not a pipe")
        try:
            data = stdout.read()
        except BaseException:
            self._abort()
            raise
        self._finish(output=data)
        return data

    def _finish(self, output: Optional[bytes] = None) -> None:
        process = self._started()
        if self._waited:
            raise RuntimeError("exex: wait was already called")
        self._waited = True

        try:
            returncode = process.wait()
        except BaseException:
            # the reader join below needs the child's stderr closed
            self._kill()
            process.wait()
            raise
        finally:
            self._release()

        logger.debug(
            f"Subprocess completed pid={process.pid} returncode={returncode}"
        )

        if returncode == 0:
            return

        if self._interrupted and self.token is not None and self.token.error is not None:
            raise self.token.error

        stderr = self._capture.getvalue() if self._capture is not None else None
        if stderr is not None:
            logger.debug(f"Captured {len(stderr)} byte(s) of stderr from pid={process.pid}")
        raise ExitError(returncode, self.args, output=output, stderr=stderr)

    def _feed(self, data: bytes) -> None:
        process = self._started()
        stdin = process.stdin
        if stdin is None:
            raise RuntimeError("exex: stdin is not a pipe")
        try:
            with stdin:
                stdin.write(data)
        except BrokenPipeError:
            # child exited without reading all of its input
            logger.debug(f"stdin closed by child pid={process.pid}")

    def _release(self) -> None:
        """Drop the token callback, join the capture reader and close our pipes."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._capture is not None:
            self._capture.close()
        process = self.process
        if process is not None:
            for stream in (process.stdin, process.stdout):
                if stream is not None:
                    _close_pipe(stream)

    def _abort(self) -> None:
        """Kill and reap the child after the parent side of run() failed."""
        process = self._started()
        self._kill()
        if self._waited:
            return
        self._waited = True
        try:
            process.wait()
        finally:
            self._release()

    def _kill(self) -> None:
        """Kill the child if it is still running."""
        process = self.process
        if process is None or process.returncode is not None:
            return
        logger.debug(f"Killing subprocess pid={process.pid}")
        try:
            process.kill()
        except ProcessLookupError:
            pass

    def _interrupt(self) -> None:
        """Token callback: kill the child if it is still running."""
        process = self.process
        if process is None or process.returncode is not None:
            return
        # set before the kill so wait() sees it as soon as the child dies
        self._interrupted = True
        self._kill()


def _close_pipe(stream: IO[bytes]) -> None:
    try:
        stream.close()
    except BrokenPipeError:
        pass


def command(name: str, *args: str) -> Cmd:
    """Return a Cmd that runs ``name`` with ``args``."""
    return Cmd([name, *args])


def command_with_cancellation(token: Optional[CancelToken], name: str, *args: str) -> Cmd:
    """Like command() but bound to a CancelToken.

    A None token is accepted and means the command cannot be cancelled.
    """
    return Cmd([name, *args], token=token)


def run_command(cmd: Union[Cmd, ProcessSpec]) -> None:
    """Run a caller-built Cmd or ProcessSpec with stderr capture."""
    if isinstance(cmd, ProcessSpec):
        Cmd.from_spec(cmd).run(input=cmd.stdin_bytes)
        return
    cmd.run()


def run(name: str, *args: str) -> None:
    """Build a Cmd and run it."""
    command(name, *args).run()


def run_with_cancellation(token: Optional[CancelToken], name: str, *args: str) -> None:
    """Build a Cmd bound to ``token`` and run it."""
    command_with_cancellation(token, name, *args).run()
