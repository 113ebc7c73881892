"""Runtime module for async process execution.

This module runs processes inside an anyio event loop with the same stderr
capture guarantee as the synchronous ``exex.Cmd``.
"""

from __future__ import annotations

from .process_runner import ProcessRunner, ProcessSpec, run_process

__all__ = [
    "ProcessRunner",
    "ProcessSpec",
    "run_process",
]
