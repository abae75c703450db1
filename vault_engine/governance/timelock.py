"""
Governance Timelock - Delayed execution of parameter changes.

Governance does not call component setters directly. An admin schedules
a setter call, waits out the delay, then executes it within the grace
period. The timelock calls the setter as the governance principal, so
components only ever see parameter changes that have been public for at
least timelock_delay_seconds.

Lifecycle:
    schedule() -> QUEUED --execute() after eta--> EXECUTED
                        --cancel()--------------> CANCELLED
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List

from vault_engine.core.access import Principal, non_reentrant, require_caller
from vault_engine.core.exceptions import InvalidParameter, TimelockExpired, TimelockNotReady
from vault_engine.core.settings import GovernanceSettings, apply_updates
from vault_engine.utils.clock import Clock, system_clock

logger = logging.getLogger('GOVERNANCE.TIMELOCK')


class OperationStatus(Enum):
    QUEUED = "queued"
    EXECUTED = "executed"
    CANCELLED = "cancelled"


@dataclass
class QueuedOperation:
    """
    One scheduled setter call.

    Attributes:
        op_id: Identifier returned by schedule()
        target: Component whose setter will be invoked
        setter: Method name on target
        kwargs: Keyword arguments passed to the setter
        eta: Earliest execution time (UNIX seconds)
        expires_at: Latest execution time (UNIX seconds)
    """
    op_id: str
    target: Any
    setter: str
    kwargs: Dict[str, Any]
    eta: int
    expires_at: int
    description: str = ''
    status: OperationStatus = OperationStatus.QUEUED
    scheduled_at: int = 0
    executed_at: int = 0
    result: Any = field(default=None, repr=False)

    @property
    def target_name(self) -> str:
        return type(self.target).__name__


class TimelockQueue:
    """
    Queue of delayed governance calls.

    Usage:
        timelock = TimelockQueue(admin=ADMIN, governance=GOV, settings=GovernanceSettings())
        op_id = timelock.schedule(ADMIN, risk_manager, 'update_parameters',
                                  {'max_drawdown_bps': 800}, 'tighten breaker')
        ...two days later...
        timelock.execute(ADMIN, op_id)
    """

    def __init__(
        self,
        admin: Principal,
        governance: Principal,
        settings: GovernanceSettings,
        clock: Clock = system_clock,
    ):
        self.admin = admin
        self.governance = governance
        self.settings = settings
        self._clock = clock
        self._operations: Dict[str, QueuedOperation] = {}
        self._nonce = 0

        logger.info(
            f"TimelockQueue initialized: delay={settings.timelock_delay_seconds}s, "
            f"grace={settings.grace_period_seconds}s"
        )

    def schedule(
        self,
        caller: Principal,
        target: Any,
        setter: str,
        kwargs: Dict[str, Any],
        description: str = '',
    ) -> str:
        """
        Queue a setter call for execution after the delay.

        Args:
            caller: Must be the admin
            target: Component exposing `setter(governance_principal, **kwargs)`
            setter: Name of the method to call
            kwargs: Arguments for the setter
            description: Free-text reason shown in logs

        Returns:
            Operation id

        Raises:
            NotAuthorized: If caller is not the admin
            InvalidParameter: If target has no callable `setter`
        """
        require_caller(caller, self.admin, 'TimelockQueue.schedule')
        if setter.startswith('_') or not callable(getattr(target, setter, None)):
            raise InvalidParameter(f"{type(target).__name__} has no setter '{setter}'")

        now = self._clock()
        self._nonce += 1
        op_id = f"op-{self._nonce:04d}"
        eta = now + self.settings.timelock_delay_seconds
        operation = QueuedOperation(
            op_id=op_id,
            target=target,
            setter=setter,
            kwargs=dict(kwargs),
            eta=eta,
            expires_at=eta + self.settings.grace_period_seconds,
            description=description,
            scheduled_at=now,
        )
        self._operations[op_id] = operation

        logger.warning(
            f"Scheduled {op_id}: {operation.target_name}.{setter}({kwargs}) "
            f"eta={eta} ({description or 'no description'})"
        )
        return op_id

    @non_reentrant
    def execute(self, caller: Principal, op_id: str) -> Any:
        """
        Run a queued operation whose delay has elapsed.

        Returns:
            Whatever the setter returned

        Raises:
            NotAuthorized: If caller is not the admin
            KeyError: If op_id is unknown
            InvalidParameter: If the operation is not queued
            TimelockNotReady: If called before eta
            TimelockExpired: If called after eta + grace period
        """
        require_caller(caller, self.admin, 'TimelockQueue.execute')
        operation = self._get_queued(op_id)
        now = self._clock()

        if now < operation.eta:
            error_msg = f"{op_id} not ready: {operation.eta - now}s until eta"
            logger.error(error_msg)
            raise TimelockNotReady(error_msg)

        if now > operation.expires_at:
            error_msg = f"{op_id} expired {now - operation.expires_at}s ago"
            logger.error(error_msg)
            raise TimelockExpired(error_msg)

        setter = getattr(operation.target, operation.setter)
        operation.result = setter(self.governance, **operation.kwargs)
        operation.status = OperationStatus.EXECUTED
        operation.executed_at = now

        logger.warning(
            f"Executed {op_id}: {operation.target_name}.{operation.setter}({operation.kwargs})"
        )
        return operation.result

    def cancel(self, caller: Principal, op_id: str) -> None:
        require_caller(caller, self.admin, 'TimelockQueue.cancel')
        operation = self._get_queued(op_id)
        operation.status = OperationStatus.CANCELLED
        logger.warning(f"Cancelled {op_id}: {operation.target_name}.{operation.setter}")

    def _get_queued(self, op_id: str) -> QueuedOperation:
        if op_id not in self._operations:
            raise KeyError(f"Unknown timelock operation: {op_id}")
        operation = self._operations[op_id]
        if operation.status is not OperationStatus.QUEUED:
            raise InvalidParameter(f"{op_id} is {operation.status.value}, not queued")
        return operation

    def get_operation(self, op_id: str) -> QueuedOperation:
        return self._operations[op_id]

    def pending_operations(self) -> List[QueuedOperation]:
        """Queued operations ordered by eta."""
        queued = [op for op in self._operations.values() if op.status is OperationStatus.QUEUED]
        return sorted(queued, key=lambda op: op.eta)

    def update_parameters(self, caller: Principal, **changes: Any) -> GovernanceSettings:
        """
        Change the timelock's own delays.

        Only the governance principal may call this, which means the change
        itself has to pass through the queue.
        """
        require_caller(caller, self.governance, 'TimelockQueue.update_parameters')
        self.settings = apply_updates(self.settings, changes)
        logger.warning(f"Timelock parameters updated: {changes}")
        return self.settings
