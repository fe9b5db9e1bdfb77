"""Shared fixtures for manifest_builder tests."""

from __future__ import annotations

import json
import stat
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

from manifest_builder.builds.builder import BuildMk, BuildMkConfig

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def python_argv(code: str) -> list[str]:
    """Command running ``code`` with the current interpreter."""
    return [sys.executable, "-c", code]


def write_executable(path: Path, source: str) -> Path:
    """Write a Python script runnable by the current interpreter."""
    lines = source.splitlines()
    if lines and lines[0].startswith("#!"):
        lines = lines[1:]
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join([f"#!{sys.executable}", *lines]) + "\n")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def fake_make(tmp_path: Path) -> Path:
    """Executable fake build driver."""
    source = (FIXTURES_DIR / "fake_make.py").read_text()
    return write_executable(tmp_path / "bin" / "make", source)


@pytest.fixture
def build_mk(tmp_path: Path) -> Path:
    """Placeholder build makefile."""
    path = tmp_path / "build.mk"
    path.write_text("# build makefile\n")
    return path


@pytest.fixture
def store_dir(tmp_path: Path) -> Path:
    """Content-addressed store the fake driver writes results into."""
    return tmp_path / "store"


@pytest.fixture
def builder_config(fake_make: Path, build_mk: Path, store_dir: Path) -> BuildMkConfig:
    return BuildMkConfig(
        gnumake_bin=fake_make,
        build_mk=build_mk,
        env={"FAKE_STORE_DIR": str(store_dir)},
    )


@pytest.fixture
def builder(builder_config: BuildMkConfig) -> BuildMk:
    return BuildMk(builder_config)


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Directory the build runs in."""
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def make_env(project_dir: Path) -> Callable[..., Path]:
    """Factory writing a rendered environment with the given builds."""

    def _make_env(
        builds: dict[str, dict],
        clean_exit_code: int = 0,
        clean_stderr: list[str] | None = None,
    ) -> Path:
        env_path = project_dir / ".env" / "run"
        env_path.mkdir(parents=True, exist_ok=True)
        (env_path / "manifest.json").write_text(
            json.dumps(
                {
                    "builds": builds,
                    "clean_exit_code": clean_exit_code,
                    "clean_stderr": clean_stderr or [],
                }
            )
        )
        return env_path

    return _make_env
