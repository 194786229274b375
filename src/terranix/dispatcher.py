# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/terranix/dispatcher.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from terranix.build.builder import Builder
from terranix.build.compiler import Compiler, NixCompiler
from terranix.config.models import Settings
from terranix.deploy.deployer import Deployer
from terranix.errors import ExitCode, TerranixError, Unreachable
from terranix.generator.configurator import ConfiguratorRunner, SubprocessConfiguratorRunner
from terranix.generator.generator import ConfigGenerator
from terranix.nodes.prober import Prober
from terranix.nodes.registry import NodeRegistry
from terranix.observers.dispatcher import EventBus
from terranix.observers.events import (
    CommandFinished,
    CommandStarted,
    NodeBuilt,
    NodeFailed,
    NodeInitialized,
    NodeProbed,
    NodePushed,
    new_ctx,
)
from terranix.state.models import InputDocument
from terranix.state.provider import StateProvider
from terranix.utils.ssh_runner import SSHTransport, Transport

log = logging.getLogger("terranix")


class Command(str, Enum):
    INIT = "init"
    INIT_FROM_JSON = "initFromJSON"
    CHECK = "check"
    BUILD = "build"
    PUSH = "push"


@dataclass
class RunReport:
    """Outcome of one command. `failures` maps node name to the error it hit."""
    command: Command
    nodes: List[str] = field(default_factory=list)
    failures: Dict[str, TerranixError] = field(default_factory=dict)
    exit_code: int = ExitCode.OK

    @property
    def ok(self) -> bool:
        return self.exit_code == ExitCode.OK

    def fail(self, name: str, error: TerranixError) -> None:
        self.failures[name] = error
        if self.exit_code == ExitCode.OK:
            self.exit_code = int(error.exit_code)


class CommandDispatcher:
    """
    Sequences the components into the public verbs.

    init/initFromJSON/check keep going when a node fails and report at the
    end. build/push stop at the first failure. Validation problems (unknown
    names, missing configurators) always stop the batch before any work.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        provider: Optional[StateProvider] = None,
        compiler: Optional[Compiler] = None,
        transport: Optional[Transport] = None,
        configurator_runner: Optional[ConfiguratorRunner] = None,
        deployer: Optional[Deployer] = None,
        observers: Optional[List] = None,
        run_id: Optional[str] = None,
    ):
        self.settings = settings
        self.provider = provider or StateProvider(settings)
        compiler = compiler or NixCompiler(settings.nix_build_opts)
        transport = transport or SSHTransport(settings)

        self.registry = NodeRegistry(settings, compiler)
        self.prober = Prober(transport, attempts=settings.probe_attempts, delay=settings.probe_delay)
        self.generator = ConfigGenerator(
            settings, configurator_runner or SubprocessConfiguratorRunner(settings)
        )
        self.builder = Builder(settings, compiler)
        self.deployer = deployer or Deployer(settings, transport)

        self.bus = EventBus(observers or [])
        self.run_id = run_id

        self._table: Dict[Command, Callable[[InputDocument, List[str], RunReport, dict], None]] = {
            Command.INIT: self._init,
            Command.INIT_FROM_JSON: self._init_from_json,
            Command.CHECK: self._check,
            Command.BUILD: self._build,
            Command.PUSH: self._push,
        }

    # ------------------ entry point ------------------

    def dispatch(self, command: Command, names: Sequence[str] = ()) -> RunReport:
        handler = self._table[command]
        report = RunReport(command=command)
        ctx = new_ctx(command.value, self.run_id)

        try:
            with self.provider.session():
                document = self.provider.resolve()
                report.nodes = self.registry.check_instances(document, names)
                self.bus.emit(CommandStarted(nodes=list(report.nodes), **ctx))
                handler(document, report.nodes, report, ctx)
        except TerranixError as e:
            log.error("%s", e)
            report.exit_code = int(e.exit_code)

        self.bus.emit(CommandFinished(exit_code=report.exit_code, failed=list(report.failures), **ctx))
        if report.ok:
            log.info("Done!")
        return report

    # ------------------ steps ------------------

    def _probe_all(self, document: InputDocument, names: List[str], report: RunReport, ctx: dict) -> List[str]:
        """Probe every node, record failures, return the reachable ones."""
        reachable: List[str] = []
        for name in names:
            node = self.registry.node(document, name)
            try:
                attempts = self.prober.check_up(node)
            except Unreachable as e:
                log.error("%s", e)
                report.fail(name, e)
                self.bus.emit(NodeProbed(name=name, reachable=False, attempts=self.prober.attempts, **ctx))
                continue
            self.bus.emit(NodeProbed(name=name, reachable=True, attempts=attempts, **ctx))
            reachable.append(name)
        return reachable

    def _check(self, document, names, report, ctx) -> None:
        self._probe_all(document, names, report, ctx)

    def _init(self, document, names, report, ctx) -> None:
        # missing config, fields and configurators abort before anything remote happens
        self.generator.require_config()
        for name in names:
            node = self.registry.node(document, name).require()
            self.generator.find_configurator(node)

        for name in self._probe_all(document, names, report, ctx):
            node = self.registry.node(document, name)
            try:
                artifact = self.generator.init_instance(node)
            except TerranixError as e:
                log.error("[%s] %s", name, e)
                report.fail(name, e)
                self.bus.emit(NodeFailed(name=name, error=str(e), exit_code=int(e.exit_code), **ctx))
                continue
            self.bus.emit(NodeInitialized(name=name, path=str(artifact.path), **ctx))

    def _init_from_json(self, document, names, report, ctx) -> None:
        self.generator.require_config()
        for name in names:
            node = self.registry.node(document, name)
            try:
                artifact = self.generator.init_instance_from_document(node)
            except TerranixError as e:
                log.error("[%s] %s", name, e)
                report.fail(name, e)
                self.bus.emit(NodeFailed(name=name, error=str(e), exit_code=int(e.exit_code), **ctx))
                continue
            self.bus.emit(NodeInitialized(name=name, path=str(artifact.path), **ctx))

    def _build_all(self, document, names, report, ctx) -> Dict[str, str]:
        artifacts: Dict[str, str] = {}
        for name in names:
            node = self.registry.node(document, name)
            try:
                artifacts[name] = self.builder.build_instance(node)
            except TerranixError as e:
                report.fail(name, e)
                self.bus.emit(NodeFailed(name=name, error=str(e), exit_code=int(e.exit_code), **ctx))
                raise
            self.bus.emit(NodeBuilt(name=name, path=artifacts[name], **ctx))
        return artifacts

    def _build(self, document, names, report, ctx) -> None:
        self._build_all(document, names, report, ctx)

    def _require_up(self, document, names, report, ctx) -> None:
        self._probe_all(document, names, report, ctx)
        if report.failures:
            first = next(iter(report.failures.values()))
            raise Unreachable(f"{len(report.failures)} node(s) unreachable, first: {first}")

    def _push(self, document, names, report, ctx) -> None:
        # all builds finish before the first node is touched
        artifacts = self._build_all(document, names, report, ctx)
        self._require_up(document, names, report, ctx)

        for name in names:
            node = self.registry.node(document, name)
            try:
                result = self.deployer.push_instance(node, artifacts[name])
            except TerranixError as e:
                report.fail(name, e)
                self.bus.emit(NodeFailed(name=name, error=str(e), exit_code=int(e.exit_code), **ctx))
                raise
            self.bus.emit(NodePushed(name=name, path=artifacts[name], result=result.value, **ctx))

        self._require_up(document, names, report, ctx)
