"""look_path tests."""

from __future__ import annotations

import errno
import os
import stat
import sys
from pathlib import Path

import pytest

from exex import ExecutableNotFound, ExexError, look_path

IS_WINDOWS = sys.platform == "win32"


@pytest.fixture
def tool_dir(tmp_path: Path) -> Path:
    """Directory holding one executable script."""
    tool = tmp_path / "exex-fake-tool"
    tool.write_text("#!/bin/sh\nexit 0\n")
    tool.chmod(tool.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return tmp_path


class TestLookPath:
    """Executable search."""

    def test_not_found(self):
        with pytest.raises(ExecutableNotFound) as exc_info:
            look_path("foobarbazquux")

        err = exc_info.value
        assert isinstance(err, FileNotFoundError)
        assert isinstance(err, ExexError)
        assert err.errno == errno.ENOENT
        assert err.filename == "foobarbazquux"

    def test_not_found_caught_as_oserror(self):
        with pytest.raises(OSError):
            look_path("foobarbazquux")

    @pytest.mark.skipif(IS_WINDOWS, reason="POSIX executable bits")
    def test_found_in_path(self, tool_dir: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("PATH", str(tool_dir))

        found = look_path("exex-fake-tool")

        assert found == str(tool_dir / "exex-fake-tool")
        assert os.path.isabs(found)

    @pytest.mark.skipif(IS_WINDOWS, reason="POSIX executable bits")
    def test_path_with_separator(self, tool_dir: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("PATH", "")
        tool = tool_dir / "exex-fake-tool"

        assert look_path(str(tool)) == str(tool)

    @pytest.mark.skipif(IS_WINDOWS, reason="POSIX executable bits")
    def test_not_executable(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        (tmp_path / "plain-file").write_text("data")
        monkeypatch.setenv("PATH", str(tmp_path))

        with pytest.raises(ExecutableNotFound):
            look_path("plain-file")
