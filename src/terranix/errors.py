# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/terranix/errors.py
from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """
    Process exit statuses. Scripts and CI jobs depend on these values,
    never renumber them.
    """
    OK = 0
    ERROR = 1
    USAGE = 2
    NO_INSTANCE = 10
    NO_CONFIG = 11
    NO_CONFIGURATOR = 12
    BUILD_FAILED = 13
    INVALID_ARTIFACT = 14
    NO_INPUT = 15
    NO_DEPLOY_FILE = 16
    PUSH_FAILED = 17
    UNREACHABLE = 18
    COPY_FAILED = 19


class TerranixError(RuntimeError):
    """Base class for terranix failures."""
    exit_code: ExitCode = ExitCode.ERROR


class UsageError(TerranixError):
    exit_code = ExitCode.USAGE


class UnknownInstance(TerranixError):
    """Raised when a requested node name is not part of the input document."""
    exit_code = ExitCode.NO_INSTANCE


class IncompleteInstance(UnknownInstance):
    """Raised when a node lacks a field (ip, provider, ssh_key) an operation needs."""


class NoConfigFile(TerranixError):
    exit_code = ExitCode.NO_CONFIG


class NoConfigurator(TerranixError):
    exit_code = ExitCode.NO_CONFIGURATOR


class BuildFailure(TerranixError):
    exit_code = ExitCode.BUILD_FAILED

    def __init__(self, message: str, returncode: int | None = None):
        super().__init__(message)
        self.returncode = returncode


class InvalidArtifact(TerranixError):
    exit_code = ExitCode.INVALID_ARTIFACT


class NoInputFound(TerranixError):
    exit_code = ExitCode.NO_INPUT


class NoInputHook(NoInputFound):
    """No input hook installed; `terranix input` has to run first."""


class TransformFailure(NoInputFound):
    """The input hook failed or printed something that is not an input document."""


class NoDeployFile(TerranixError):
    exit_code = ExitCode.NO_DEPLOY_FILE


class RemoteProcedureFailure(TerranixError):
    exit_code = ExitCode.PUSH_FAILED

    def __init__(self, message: str, returncode: int | None = None):
        super().__init__(message)
        self.returncode = returncode


class ConfiguratorFailure(RemoteProcedureFailure):
    exit_code = ExitCode.NO_CONFIGURATOR


class Unreachable(TerranixError):
    exit_code = ExitCode.UNREACHABLE


class CopyFailure(TerranixError):
    exit_code = ExitCode.COPY_FAILED


class TransportError(TerranixError):
    """SSH connection level failure (connect, auth, channel)."""
    exit_code = ExitCode.UNREACHABLE
