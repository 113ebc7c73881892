"""Async process runner with guaranteed stderr capture.

exex runtime module v0.1.0

This module provides the async counterpart of ``exex.Cmd``:
- ProcessSpec: a caller-built description of a process (shared with the sync API)
- ProcessRunner: runs a ProcessSpec to completion under anyio
- run_process: one-shot convenience wrapper

Key design points:
- stderr is drained into an in-memory sink only when the spec leaves it unset
- stdout is never buffered by the runner
- any cancellation (anyio scope or plain asyncio task cancel) kills the child
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import anyio
from anyio.abc import ByteReceiveStream, ByteSendStream, Process

from ..config import get_config
from ..errors import Cancelled, ExitError

__all__ = [
    "ProcessRunner",
    "ProcessSpec",
    "run_process",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for a subprocess to run.

    Attributes:
        argv: Command line arguments (first element is the executable)
        cwd: Working directory for the process (None = inherit)
        env: Environment variables (None = inherit parent)
        stdin_bytes: Optional bytes to write to stdin
        stdout: stdout destination passed to the OS untouched (None = inherit)
        stderr: stderr destination; None means the runner captures it
    """

    argv: list[str]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None
    stdin_bytes: bytes | None = None
    stdout: Any = None
    stderr: Any = None


@dataclass
class ProcessRunner:
    """Runs a ProcessSpec to completion inside an anyio event loop.

    A non-zero exit raises ExitError whose ``stderr`` holds everything the
    child wrote to its error stream, unless the spec routed stderr elsewhere.

    Example:
        runner = ProcessRunner()
        spec = ProcessSpec(argv=["git", "fetch"], cwd=Path("/workspace"))

        try:
            await runner.run(spec)
        except ExitError as e:
            print(e.stderr.decode())
    """

    chunk_size: int = field(default_factory=lambda: get_config().capture_chunk_size)

    async def run(
        self,
        spec: ProcessSpec,
        *,
        cancel_scope: anyio.CancelScope | None = None,
    ) -> None:
        """Run the process and wait for it to exit.

        Args:
            spec: Process specification
            cancel_scope: Optional anyio.CancelScope; cancelling it kills the
                child and raises Cancelled

        Raises:
            ExitError: If the process exits with a non-zero status
            Cancelled: If ``cancel_scope`` was cancelled before the process finished
            OSError: If the process cannot be started
        """
        if cancel_scope is None:
            await self._run(spec)
            return

        with cancel_scope:
            await self._run(spec)

        if cancel_scope.cancelled_caught:
            logger.debug(f"Subprocess cancelled argv={spec.argv[0]}")
            raise Cancelled("process cancelled")

    async def _run(self, spec: ProcessSpec) -> None:
        capture = bytearray() if spec.stderr is None else None

        async with await anyio.open_process(
            spec.argv,
            stdin=subprocess.PIPE if spec.stdin_bytes is not None else None,
            stdout=spec.stdout,
            stderr=subprocess.PIPE if capture is not None else spec.stderr,
            cwd=spec.cwd,
            env=spec.env,
        ) as process:
            logger.debug(
                f"Started subprocess pid={process.pid} "
                f"argv={spec.argv[0]} capture={capture is not None}"
            )

            try:
                async with anyio.create_task_group() as tg:
                    if spec.stdin_bytes is not None and process.stdin is not None:
                        tg.start_soon(self._feed_stdin, process.stdin, spec.stdin_bytes)
                    if capture is not None and process.stderr is not None:
                        tg.start_soon(self._drain_stderr, process.stderr, capture)
                    returncode = await process.wait()
            except BaseException:
                # A plain asyncio cancellation is delivered once, so the
                # child must be gone before anyio's close waits on it.
                self._kill(process)
                raise

            logger.debug(
                f"Subprocess completed pid={process.pid} "
                f"returncode={returncode}"
            )

        if returncode != 0:
            raise ExitError(
                returncode,
                spec.argv,
                stderr=bytes(capture) if capture is not None else None,
            )

    @staticmethod
    def _kill(process: Process) -> None:
        """Kill the child if it is still running."""
        if process.returncode is not None:
            return
        logger.debug(f"Killing subprocess pid={process.pid}")
        try:
            process.kill()
        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={process.pid}")

    async def _drain_stderr(self, stream: ByteReceiveStream, sink: bytearray) -> None:
        """Read stderr until EOF into ``sink``."""
        while True:
            try:
                chunk = await stream.receive(self.chunk_size)
            except anyio.EndOfStream:
                break
            sink.extend(chunk)

    async def _feed_stdin(self, stream: ByteSendStream, data: bytes) -> None:
        """Write ``data`` to stdin and close it.

        A child that exits without reading all of its input is not an error.
        """
        try:
            await stream.send(data)
        except (BrokenPipeError, ConnectionResetError, anyio.BrokenResourceError) as e:
            logger.debug(f"stdin closed by child: {e}")
        finally:
            await stream.aclose()


async def run_process(
    spec: ProcessSpec,
    *,
    cancel_scope: anyio.CancelScope | None = None,
) -> None:
    """Run ``spec`` with a default ProcessRunner.

    Args:
        spec: Process specification
        cancel_scope: Optional anyio.CancelScope for cancellation
    """
    await ProcessRunner().run(spec, cancel_scope=cancel_scope)
