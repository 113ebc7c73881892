"""annotate_error tests."""

from __future__ import annotations

import subprocess

import pytest

from exex import CommandError, ExitError, UsageError, annotate_error, run


def _exit_error(stderr: bytes | None) -> ExitError:
    return ExitError(1, ["tool", "--flag"], stderr=stderr)


class TestAnnotateError:
    """annotate_error formatting."""

    def test_none_is_none(self):
        assert annotate_error(None, "step failed") is None

    def test_non_exit_error_is_usage_error(self):
        """The annotator reports misuse instead of raising."""
        result = annotate_error(ValueError("nope"), "step failed")

        assert isinstance(result, UsageError)
        assert "exex.ExitError" in str(result)

    def test_payload_on_trailing_line(self):
        err = _exit_error(b"boom")
        result = annotate_error(err, "step failed")

        assert isinstance(result, CommandError)
        text = str(result)
        assert text == f"step failed ({err})\nboom"
        assert text.splitlines()[-1] == "boom"
        assert result.message == "step failed"
        assert result.err is err
        assert result.stderr == b"boom"

    @pytest.mark.parametrize("stderr", [None, b""])
    def test_no_payload(self, stderr: bytes | None):
        err = _exit_error(stderr)
        result = annotate_error(err, "step failed")

        assert str(result) == f"step failed ({err})"
        assert "\n" not in str(result)

    def test_multiline_payload_verbatim(self):
        payload = b"line one\nline two\n"
        result = annotate_error(_exit_error(payload), "build")

        assert str(result).endswith("\nline one\nline two\n")
        assert result.stderr == payload

    def test_undecodable_bytes_kept_raw(self):
        result = annotate_error(_exit_error(b"bad \xff byte"), "step")

        assert result.stderr == b"bad \xff byte"
        assert "\\xff" in str(result)

    def test_cause_is_original_error(self):
        err = _exit_error(b"boom")
        result = annotate_error(err, "step failed")

        assert result.__cause__ is err
        with pytest.raises(CommandError) as exc_info:
            raise result
        assert exc_info.value.__cause__ is err

    def test_chained_exit_error_is_found(self):
        err = _exit_error(b"deep")
        try:
            try:
                raise err
            except ExitError as inner:
                raise RuntimeError("wrapper") from inner
        except RuntimeError as outer:
            result = annotate_error(outer, "step")

        assert isinstance(result, CommandError)
        assert str(result).endswith("\ndeep")

    def test_stdlib_called_process_error(self):
        """Errors from subprocess.run(capture_output=True) work too."""
        err = subprocess.CalledProcessError(2, ["ls"], output=b"", stderr=b"no such file")
        result = annotate_error(err, "listing")

        assert str(result).endswith("\nno such file")

    @pytest.mark.timeout(30)
    def test_end_to_end(self, fake_cli: list[str]):
        with pytest.raises(ExitError) as exc_info:
            run(*fake_cli, "foo", "bar")

        result = annotate_error(exc_info.value, "running fake cli")
        assert str(result).startswith("running fake cli (")
        assert str(result).endswith("\nerror: foo bar")
