#!/usr/bin/env python3
"""Fake build driver for integration testing.

This script stands in for ``make -f <build.mk>``. It understands the same
invocation as the real driver:

    fake_make.py -f BUILD_MK -C BASE_DIR FLOX_ENV=ENV_PATH GOAL...

Goals are ``build``, ``build/<name>``, ``clean`` and ``clean/<name>``.

Package definitions are read from ``ENV_PATH/manifest.json``:

    {
        "builds": {
            "foo": {
                "files": {"bar": "some content"},
                "stdout": ["line"],
                "stderr": ["line"],
                "exit_code": 0
            }
        },
        "clean_stderr": ["line"],
        "clean_exit_code": 0
    }

Build results are written to a content-addressed store under
``$FAKE_STORE_DIR`` and linked as ``result-<name>`` and
``result-<name>-buildCache`` in BASE_DIR.
"""

from __future__ import annotations

import hashlib
import json
import os
import shutil
import sys
from pathlib import Path
from typing import NoReturn


def fail(message: str, code: int = 2) -> NoReturn:
    print(f"fake-make: *** {message}", file=sys.stderr, flush=True)
    sys.exit(code)


def write_line(stream, line: str) -> None:
    # lone surrogates stand for raw bytes that are not valid UTF-8
    stream.buffer.write(line.encode("utf-8", "surrogateescape") + b"\n")
    stream.buffer.flush()


def parse_args(argv: list[str]) -> tuple[Path, Path, dict[str, str], list[str]]:
    makefile: Path | None = None
    directory: Path | None = None
    variables: dict[str, str] = {}
    goals: list[str] = []

    args = iter(argv)
    for arg in args:
        if arg == "-f":
            makefile = Path(next(args))
        elif arg == "-C":
            directory = Path(next(args))
        elif "=" in arg:
            key, value = arg.split("=", 1)
            variables[key] = value
        else:
            goals.append(arg)

    if makefile is None or directory is None:
        fail("usage: -f BUILD_MK -C DIR VAR=VALUE GOAL...")
    return makefile, directory, variables, goals or ["build"]


def remove_path(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()


def replace_link(link: Path, target: Path) -> None:
    if link.is_symlink() or link.exists():
        link.unlink()
    link.symlink_to(target)


def build_package(name: str, definition: dict, base_dir: Path, store: Path) -> int:
    for line in definition.get("stdout", [f"building {name}"]):
        write_line(sys.stdout, line)
    for line in definition.get("stderr", []):
        write_line(sys.stderr, line)

    exit_code = definition.get("exit_code", 0)
    if exit_code:
        return exit_code

    files = definition.get("files", {})
    digest = hashlib.sha256(
        json.dumps({"name": name, "files": files}, sort_keys=True).encode()
    ).hexdigest()[:32]

    out = store / f"{digest}-{name}"
    if out.exists():
        shutil.rmtree(out)
    out.mkdir(parents=True)
    for file_name, content in files.items():
        (out / file_name).write_text(content)

    cache = store / f"{digest}-{name}-buildCache.tar"
    cache.write_bytes(b"")

    replace_link(base_dir / f"result-{name}", out)
    replace_link(base_dir / f"result-{name}-buildCache", cache)
    return 0


def clean_package(name: str, base_dir: Path) -> None:
    for link in (base_dir / f"result-{name}", base_dir / f"result-{name}-buildCache"):
        if not link.is_symlink():
            continue
        remove_path(Path(os.readlink(link)))
        link.unlink()
        print(f"removed {link.name}", flush=True)


def built_packages(base_dir: Path) -> list[str]:
    names = []
    for link in sorted(base_dir.glob("result-*")):
        if link.is_symlink() and not link.name.endswith("-buildCache"):
            names.append(link.name[len("result-") :])
    return names


def main() -> int:
    makefile, base_dir, variables, goals = parse_args(sys.argv[1:])
    if not makefile.is_file():
        fail(f"{makefile}: No such file or directory")

    env_path = variables.get("FLOX_ENV")
    if env_path is None:
        fail("FLOX_ENV is not set")
    manifest = json.loads((Path(env_path) / "manifest.json").read_text())
    builds: dict = manifest.get("builds", {})

    store = Path(os.environ["FAKE_STORE_DIR"])
    store.mkdir(parents=True, exist_ok=True)

    for goal in goals:
        action, _, name = goal.partition("/")
        if action == "build":
            names = [name] if name else list(builds)
            for package in names:
                if package not in builds:
                    fail(f"No rule to make target 'build/{package}'.")
                code = build_package(package, builds[package], base_dir, store)
                if code:
                    fail(f"[build/{package}] Error {code}", code)
        elif action == "clean":
            for line in manifest.get("clean_stderr", []):
                write_line(sys.stderr, line)
            clean_exit_code = manifest.get("clean_exit_code", 0)
            if clean_exit_code:
                fail("clean failed", clean_exit_code)
            for package in [name] if name else built_packages(base_dir):
                clean_package(package, base_dir)
        else:
            fail(f"No rule to make target '{goal}'.")

    return 0


if __name__ == "__main__":
    sys.exit(main())
