"""Executable search under the exex error taxonomy."""

from __future__ import annotations

import errno
import logging
import os
import shutil

from .errors import ExecutableNotFound

__all__ = ["look_path"]

logger = logging.getLogger(__name__)


def look_path(name: str) -> str:
    """Find ``name`` in the directories listed in PATH.

    Names containing a path separator are checked directly, as
    ``shutil.which`` does.

    Args:
        name: Executable name

    Returns:
        Absolute path to the executable

    Raises:
        ExecutableNotFound: Nothing executable matched; also a FileNotFoundError
    """
    found = shutil.which(name)
    if found is None:
        logger.debug(f"Executable not found in PATH: {name}")
        raise ExecutableNotFound(
            errno.ENOENT, "executable file not found in $PATH", name
        )
    return os.path.abspath(found)
