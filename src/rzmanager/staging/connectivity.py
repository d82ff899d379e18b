"""Connectivity collaborator used when a commit is applied.

The Commit Engine hands each commit's statements to a TransactionExecutor,
which runs them inside one database transaction. SimulatedConnection stands
in for the real driver: it sleeps to model latency and fails on demand.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from rzmanager.observability.logging import get_logger

log = get_logger(__name__)

DEFAULT_FAILURE_MESSAGE = "Simulated SQL error: FOREIGN KEY constraint violation"


@dataclass(frozen=True)
class TransactionOutcome:
    """Result of executing one transaction."""

    success: bool
    error: str | None = None


@runtime_checkable
class TransactionExecutor(Protocol):
    """Runs a batch of statements as one all-or-nothing transaction.

    Implementations either return an outcome or raise TransactionError;
    the engine treats both failure shapes the same way.
    """

    async def execute_transaction(self, statements: list[str]) -> TransactionOutcome:
        """Execute *statements* in order inside one transaction."""
        ...


@dataclass
class SimulatedConnection:
    """In-process stand-in for the database connectivity layer.

    Attributes:
        latency_seconds: Time each transaction takes.
        failure_rate: Probability in [0, 1] that a transaction fails.
        rng: Random source for failures; seed it for reproducible runs.
        executed: Statement batches that were committed, in order.
    """

    latency_seconds: float = 0.0
    failure_rate: float = 0.0
    rng: random.Random = field(default_factory=random.Random)
    executed: list[list[str]] = field(default_factory=list)
    calls: int = 0
    _fail_next: list[str] = field(default_factory=list, repr=False)

    def fail_next(self, message: str = DEFAULT_FAILURE_MESSAGE) -> None:
        """Force the next transaction to fail with *message*."""
        self._fail_next.append(message)

    async def execute_transaction(self, statements: list[str]) -> TransactionOutcome:
        self.calls += 1
        if self.latency_seconds > 0:
            await asyncio.sleep(self.latency_seconds)

        if self._fail_next:
            message = self._fail_next.pop(0)
        elif self.failure_rate > 0 and self.rng.random() < self.failure_rate:
            message = DEFAULT_FAILURE_MESSAGE
        else:
            self.executed.append(list(statements))
            log.debug("transaction_committed", statements=len(statements))
            return TransactionOutcome(success=True)

        log.debug("transaction_rolled_back", statements=len(statements), error=message)
        return TransactionOutcome(success=False, error=message)
