# src/terranix/nodes/prober.py
from __future__ import annotations

import logging

from terranix.errors import TerranixError, TransportError, Unreachable
from terranix.state.models import Node
from terranix.utils.retry import RetryError, retry
from terranix.utils.ssh_runner import Transport

log = logging.getLogger("terranix")


class _ProbeFailed(TerranixError):
    pass


class Prober:
    """
    Liveness check over the transport. Freshly provisioned or rebooted
    machines take a while to accept connections, hence the fixed retries.
    """

    def __init__(self, transport: Transport, attempts: int = 3, delay: float = 5.0):
        self.transport = transport
        self.attempts = attempts
        self.delay = delay

    def check_up(self, node: Node) -> int:
        """Return the number of attempts it took; raise Unreachable after the last one fails."""
        if not node.ip:
            raise Unreachable(f"[{node.name}] has no ip address")

        tries = 0

        def _on_retry(attempt: int, exc: Exception) -> None:
            log.info(
                "[%s] not reachable yet (attempt %d/%d: %s), retrying in %ss",
                node.name, attempt, self.attempts, exc, self.delay,
            )

        @retry(
            retries=self.attempts,
            delay=self.delay,
            retry_on=(TransportError, _ProbeFailed),
            on_retry=_on_retry,
        )
        def _probe() -> None:
            nonlocal tries
            tries += 1
            rc, _, err = self.transport.run(node, "true")
            if rc != 0:
                raise _ProbeFailed(f"no-op exited with {rc}: {err.strip()}")

        try:
            _probe()
        except RetryError as e:
            raise Unreachable(
                f"[{node.name}] {node.ip} unreachable after {e.attempts} attempts: {e.__cause__}"
            ) from e
        log.debug("[%s] reachable", node.name)
        return tries
