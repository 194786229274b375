# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/terranix/state/provider.py
from __future__ import annotations

import json
import logging
import os
import shlex
import signal
import stat
import subprocess
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from pydantic import ValidationError

from terranix.config.models import Settings
from terranix.errors import NoInputFound, NoInputHook, TransformFailure
from terranix.state.models import InputDocument

log = logging.getLogger("terranix")

CLEANUP_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGTERM", "SIGHUP") if hasattr(signal, name)
)


def parse_document(raw: str, source: str) -> InputDocument:
    try:
        return InputDocument.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as e:
        raise TransformFailure(f"{source} is not a valid input document: {e}") from e


class InputCache:
    """
    Owns the per-invocation input cache file.

    The file is removed when the block exits, whether it returns, raises or
    the process receives SIGTERM/SIGHUP (converted to SystemExit so the
    block unwinds). A leftover file from a killed run is removed on entry.
    """

    def __init__(self, path: Path):
        self.path = path
        self._previous: dict = {}

    def __enter__(self) -> "InputCache":
        self.path.unlink(missing_ok=True)
        if threading.current_thread() is threading.main_thread():
            for sig in CLEANUP_SIGNALS:
                self._previous[sig] = signal.signal(sig, self._on_signal)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            self.path.unlink(missing_ok=True)
        finally:
            for sig, handler in self._previous.items():
                signal.signal(sig, handler)
            self._previous.clear()

    @staticmethod
    def _on_signal(signum, frame):
        raise SystemExit(128 + signum)

    def read(self) -> Optional[str]:
        if self.path.is_file():
            return self.path.read_text(encoding="utf-8")
        return None

    def write(self, raw: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(raw, encoding="utf-8")


class StateProvider:
    """
    Resolves the input document from the user's input hook, at most once
    per invocation. Use inside ``session()``; the document is memoized both
    in memory and in the cache file that generated configurations read.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._cache: Optional[InputCache] = None
        self._document: Optional[InputDocument] = None

    @contextmanager
    def session(self) -> Iterator["StateProvider"]:
        with InputCache(self.settings.input_cache) as cache:
            self._cache = cache
            try:
                yield self
            finally:
                self._cache = None
                self._document = None

    @property
    def cache_path(self) -> Path:
        return self.settings.input_cache

    def resolve(self) -> InputDocument:
        if self._document is not None:
            return self._document
        if self._cache is None:
            raise RuntimeError("StateProvider.resolve() called outside of session()")

        raw = self._cache.read()
        if raw is None:
            raw = self._run_hook()
            self._cache.write(raw)
        self._document = parse_document(raw, "input hook output")
        log.debug("Input document has %d node(s)", len(self._document.nodes))
        return self._document

    def _run_hook(self) -> str:
        hook = self.settings.input_hook
        if not hook.is_file() or not os.access(hook, os.X_OK):
            raise NoInputHook(
                f"no input hook at {hook}, run `terranix input <json>` first"
            )

        log.debug("Running input hook %s", hook)
        cp = subprocess.run(
            [str(hook)],
            capture_output=True,
            text=True,
            check=False,
            cwd=str(self.settings.workdir),
        )
        if cp.returncode != 0:
            raise TransformFailure(
                f"input hook failed (rc={cp.returncode})\n{cp.stderr.strip()}"
            )
        return cp.stdout


def install_input(settings: Settings, json_path: str | Path) -> InputDocument:
    """
    Store a JSON input document permanently and install a hook that prints
    it. Validates the document before anything is written.
    """
    source = Path(json_path)
    if not source.is_file():
        raise NoInputFound(f"input file {source} does not exist")

    raw = source.read_text(encoding="utf-8")
    document = parse_document(raw, str(source))

    settings.state_dir.mkdir(parents=True, exist_ok=True)
    settings.input_store.write_text(raw, encoding="utf-8")

    hook = settings.input_hook
    hook.write_text(
        "#!/bin/sh\n"
        f"exec cat {shlex.quote(str(settings.input_store.resolve()))}\n",
        encoding="utf-8",
    )
    hook.chmod(hook.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    log.info("Installed input with %d node(s) from %s", len(document.nodes), source)
    return document
