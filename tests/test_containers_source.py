"""Tests for containers/source.py - streaming an image script into a sink."""

import io
import logging
from pathlib import Path

import pytest

from conftest import write_executable
from manifest_builder.containers.sink import FileSink, StdoutSink
from manifest_builder.containers.source import ContainerSource, ContainerStreamError
from manifest_builder.process import ProcessHandle

STREAM_SCRIPT = """
import os
import sys

header = f"{{os.environ['CONTAINER_NAME']}}:{{os.environ['CONTAINER_TAG']}}\\n"
sys.stdout.buffer.write(header.encode())
sys.stdout.buffer.write(b"x" * {size})
print("streamed layers", file=sys.stderr)
"""

FAILING_SCRIPT = """
import sys
sys.stdout.buffer.write(b"partial")
print("error: cannot build image", file=sys.stderr)
sys.exit(2)
"""


class TestContainerSource:
    """Tests for ContainerSource.stream_container."""

    def test_stream_to_file(self, tmp_path: Path) -> None:
        script = write_executable(tmp_path / "stream", STREAM_SCRIPT.format(size=10))
        sink = FileSink(tmp_path / "image.tar")

        streamed = ContainerSource(script, "myenv", "v1").stream_container(sink)
        sink.finalize()

        data = (tmp_path / "image.tar").read_bytes()
        assert data == b"myenv:v1\n" + b"x" * 10
        assert streamed == len(data)

    def test_stream_larger_than_chunk(self, tmp_path: Path) -> None:
        script = write_executable(tmp_path / "stream", STREAM_SCRIPT.format(size=5000))
        stream = io.BytesIO()
        sink = StdoutSink(stream)

        streamed = ContainerSource(script, "env").stream_container(sink, chunk_size=1024)
        sink.finalize()

        assert stream.getvalue().startswith(b"env:latest\n")
        assert streamed == len(b"env:latest\n") + 5000

    def test_failing_script(self, tmp_path: Path) -> None:
        script = write_executable(tmp_path / "stream", FAILING_SCRIPT)
        sink = StdoutSink(io.BytesIO())

        with pytest.raises(ContainerStreamError) as exc_info:
            ContainerSource(script, "env").stream_container(sink)

        assert exc_info.value.returncode == 2
        assert "cannot build image" in str(exc_info.value)

    def test_missing_script(self, tmp_path: Path) -> None:
        sink = StdoutSink(io.BytesIO())
        with pytest.raises(ContainerStreamError):
            ContainerSource(tmp_path / "missing", "env").stream_container(sink)

    def test_undecodable_stderr_skipped(self, tmp_path: Path, caplog) -> None:
        """Script stderr follows the relay's decode policy: bad lines are skipped."""
        script = write_executable(
            tmp_path / "stream",
            "import sys\n"
            "sys.stderr.buffer.write(b'error: disk full\\n\\xff\\xfe\\n')\n"
            "sys.exit(1)\n",
        )
        sink = StdoutSink(io.BytesIO())

        with caplog.at_level(logging.WARNING, logger="manifest_builder"):
            with pytest.raises(ContainerStreamError) as exc_info:
                ContainerSource(script, "env").stream_container(sink)

        assert str(exc_info.value).endswith("error: disk full")
        assert "Failed to decode output line" in caplog.text

    def test_missing_output_pipe(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setattr(ProcessHandle, "take_stdout", lambda self: None)
        script = write_executable(tmp_path / "stream", STREAM_SCRIPT.format(size=10))
        with pytest.raises(ContainerStreamError) as exc_info:
            ContainerSource(script, "env").stream_container(StdoutSink(io.BytesIO()))
        assert "without output pipes" in str(exc_info.value)
