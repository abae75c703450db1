"""
Strategy engine - The capital-allocation control loop.

Coordinates one cycle across all components:
    1. Gate on the Risk Manager (paused, breaker, extreme volatility)
    2. Refresh volatility
    3. Harvest rewards from both venues (best effort per venue)
    4. Pay the caller's bounty
    5. Redeploy idle capital at the volatility-adjusted split
    6. Rebalance between venues when the policy says so
    7. Update the hedge (none is held while funding is adverse)
    8. Re-check drawdown (may abort loudly), then try a breaker reset
    9. Record the compound

Example:
    from vault_engine.core.strategy_engine import StrategyEngine, EnginePrincipals

    engine = StrategyEngine.build(settings, feed, safe, growth, ledger, principals, clock=clock)
    report = engine.execute_cycle(Principal('keeper-1'))
    print(report.summary())
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from vault_engine.adapters.asset_ledger import AssetLedger
from vault_engine.adapters.price_feed import FundingRateFeed, PriceFeed
from vault_engine.adapters.yield_source import YieldSource
from vault_engine.core.access import Principal, non_reentrant, require_caller
from vault_engine.core.exceptions import (
    ExecutionNotAllowed,
    PriceValidationError,
    YieldSourceError,
)
from vault_engine.core.settings import EngineSettings
from vault_engine.risk.risk_manager import RiskManager
from vault_engine.risk.volatility import VolatilityBand
from vault_engine.strategy.auto_compounder import AutoCompounder, CompoundRecord
from vault_engine.strategy.hedging_engine import HedgeAction, HedgingEngine
from vault_engine.strategy.rebalance_policy import RebalanceAction, RebalancePolicy
from vault_engine.utils.clock import Clock, system_clock
from vault_engine.utils.fixed_point import BPS, bps_mul, bps_of, format_wad, safe_sub
from vault_engine.utils.logging_config import get_engine_logger

logger = get_engine_logger()


@dataclass(frozen=True)
class EnginePrincipals:
    """Caller identities wired into every component."""
    engine: Principal = Principal('strategy-engine')
    governance: Principal = Principal('governance-timelock')
    vault: Principal = Principal('pooled-vault')
    operator: Principal = Principal('emergency-operator')


@dataclass(frozen=True)
class OperationResult:
    """
    Outcome of one best-effort venue call.

    Failed calls carry the error text; the engine inspects ok and moves on.
    """
    venue: str
    operation: str
    ok: bool
    amount: int = 0
    error: Optional[str] = None


@dataclass
class CycleReport:
    """Everything one execute_cycle() call did."""
    started_at: int
    caller: str
    volatility_band: VolatilityBand = VolatilityBand.LOW
    harvest_attempted: bool = False
    harvest_results: List[OperationResult] = field(default_factory=list)
    harvested: int = 0
    bounty_paid: int = 0
    redeployed: int = 0
    deployment_blocked: bool = False
    movement_results: List[OperationResult] = field(default_factory=list)
    rebalance: Optional[RebalanceAction] = None
    rebalance_executed: bool = False
    funding_closed: bool = False
    hedge_action: HedgeAction = HedgeAction.UNCHANGED
    total_value: int = 0
    drawdown_bps: int = 0
    circuit_breaker_reset: bool = False
    compound: Optional[CompoundRecord] = None

    @property
    def failures(self) -> List[OperationResult]:
        return [r for r in self.harvest_results + self.movement_results if not r.ok]

    def summary(self) -> str:
        rebalance = 'yes' if self.rebalance_executed else 'no'
        return (
            f"band={self.volatility_band} harvested={format_wad(self.harvested)} "
            f"bounty={format_wad(self.bounty_paid)} redeployed={format_wad(self.redeployed)} "
            f"rebalanced={rebalance} hedge={self.hedge_action.value} "
            f"total={format_wad(self.total_value)} drawdown={self.drawdown_bps}bps "
            f"failures={len(self.failures)}"
        )


class StrategyEngine:
    """
    Orchestrator for the vault's two yield venues.

    The engine keeps custody of an idle balance. Capital enters via
    deploy_capital() and harvests, and leaves via withdraw_capital(),
    bounty payments and emergency sweeps (credited to the AssetLedger).

    Withdrawals that a venue cannot settle immediately set a pending flag
    for that venue; the next cycle claims them before doing anything else.

    Known limitation: withdraw_capital() lowers total_managed_value() while
    the risk manager's high-water mark stays put, so a vault redemption
    larger than max_drawdown_bps of the total trips the circuit breaker on
    the next cycle exactly as a loss would.

    Attributes:
        idle_balance: Base asset held by the engine, not deployed
        owed_to_vault: Requested vault withdrawals still waiting on a venue
        paused: Set by the operator; blocks cycles and deployments
    """

    def __init__(
        self,
        risk_manager: RiskManager,
        rebalance_policy: RebalancePolicy,
        hedging_engine: HedgingEngine,
        auto_compounder: AutoCompounder,
        safe_source: YieldSource,
        growth_source: YieldSource,
        ledger: AssetLedger,
        principals: EnginePrincipals = EnginePrincipals(),
        funding_feed: Optional[FundingRateFeed] = None,
        vault_account: str = 'vault',
        clock: Clock = system_clock,
    ):
        self.risk_manager = risk_manager
        self.rebalance_policy = rebalance_policy
        self.hedging_engine = hedging_engine
        self.auto_compounder = auto_compounder
        self.safe_source = safe_source
        self.growth_source = growth_source
        self.ledger = ledger
        self.principals = principals
        self.principal = principals.engine
        self.funding_feed = funding_feed
        self.vault_account = vault_account
        self._clock = clock

        self.idle_balance = 0
        self.owed_to_vault = 0
        self.paused = False
        self.pending_withdrawal: Dict[str, bool] = {
            safe_source.name: False,
            growth_source.name: False,
        }
        self.cycle_count = 0

        logger.info(
            f"StrategyEngine initialized: safe={safe_source.name}, growth={growth_source.name}, "
            f"funding_feed={'yes' if funding_feed else 'no'}"
        )

    @classmethod
    def build(
        cls,
        settings: EngineSettings,
        price_feed: PriceFeed,
        safe_source: YieldSource,
        growth_source: YieldSource,
        ledger: AssetLedger,
        principals: EnginePrincipals = EnginePrincipals(),
        funding_feed: Optional[FundingRateFeed] = None,
        vault_account: str = 'vault',
        clock: Clock = system_clock,
    ) -> 'StrategyEngine':
        """Wire all components from one EngineSettings."""
        engine_id = principals.engine
        governance = principals.governance

        risk = RiskManager(price_feed, settings.risk, engine_id, governance, clock=clock)
        policy = RebalancePolicy(risk, settings.rebalance, engine_id, governance, clock=clock)
        hedger = HedgingEngine(risk, settings.hedge, engine_id, governance, clock=clock)
        compounder = AutoCompounder(settings.compounder, engine_id, governance, clock=clock)

        return cls(
            risk_manager=risk,
            rebalance_policy=policy,
            hedging_engine=hedger,
            auto_compounder=compounder,
            safe_source=safe_source,
            growth_source=growth_source,
            ledger=ledger,
            principals=principals,
            funding_feed=funding_feed,
            vault_account=vault_account,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    @non_reentrant
    def execute_cycle(self, caller: Principal) -> CycleReport:
        """
        Run one full control cycle.

        Args:
            caller: Whoever triggers the cycle; receives the bounty

        Returns:
            CycleReport with every step's outcome

        Raises:
            ExecutionNotAllowed: If paused, breaker active or volatility extreme
            ReentrantCall: If invoked from inside a running cycle
            StalePrice, InvalidPrice: If the reference price is unusable
            CircuitBreakerTriggered: If drawdown exceeds the limit after the cycle
            AllocationExceedsLimit, SlippageTooHigh: On capital-safety breaches
            CompoundTooSoon: If the compound cadence was violated
        """
        report = CycleReport(started_at=self._clock(), caller=caller.name)
        self._check_gate()
        self.cycle_count += 1
        logger.info(f"Cycle #{self.cycle_count} started by {caller}")

        # Step 2: volatility refresh
        report.volatility_band = self.risk_manager.update_volatility()
        report.deployment_blocked = not self.risk_manager.is_execution_allowed()
        if report.deployment_blocked:
            logger.warning(
                f"Deployment blocked after volatility refresh: band={report.volatility_band}"
            )

        self._settle_pending_withdrawals(report)

        # Steps 3-5: harvest, bounty, redeploy
        if self.auto_compounder.can_compound():
            report.harvest_attempted = True
            self._harvest(report)
            self._pay_bounty(caller, report)
        else:
            logger.info(
                f"Harvest skipped: next compound in "
                f"{self.auto_compounder.time_until_next_compound()}s"
            )

        if not report.deployment_blocked and self.idle_balance > 0:
            report.redeployed = self._allocate(self.idle_balance, report)

        # Step 6: rebalance
        safe_value = self.safe_source.total_value()
        growth_value = self.growth_source.total_value()
        report.rebalance = self.rebalance_policy.evaluate(safe_value, growth_value)
        if report.rebalance.needs_rebalance and not report.deployment_blocked:
            report.rebalance_executed = self._execute_rebalance(report.rebalance, report)
            if report.rebalance_executed:
                self.rebalance_policy.record(self.principal)

        # Step 7: hedge. No hedge is held while funding is adverse.
        funding_adverse = False
        if self.funding_feed is not None:
            funding_rate_bps = self.funding_feed.current_funding_rate_bps()
            funding_adverse = self.hedging_engine.is_funding_adverse(funding_rate_bps)
            report.funding_closed = self.hedging_engine.check_funding_rate(
                self.principal, funding_rate_bps
            )
        if funding_adverse:
            report.hedge_action = (
                HedgeAction.CLOSED if report.funding_closed else HedgeAction.UNCHANGED
            )
            logger.info("Hedge update skipped: funding adverse to shorts")
        else:
            report.hedge_action = self.hedging_engine.update_hedge(
                self.principal,
                exposure=self.growth_source.total_value(),
                available_collateral=self.safe_source.total_value(),
            )

        # Step 8: drawdown
        report.total_value = self.total_managed_value()
        report.drawdown_bps = self.risk_manager.check_drawdown(self.principal, report.total_value)
        report.circuit_breaker_reset = self.risk_manager.try_reset_circuit_breaker(
            self.principal, report.total_value
        )

        # Step 9: compound record
        if report.harvested > 0:
            report.compound = self.auto_compounder.record_compound(
                self.principal, caller.name, report.harvested, report.bounty_paid
            )

        logger.info(f"Cycle #{self.cycle_count} complete: {report.summary()}")
        return report

    def _check_gate(self) -> None:
        if self.paused:
            logger.error("Cycle rejected: engine paused")
            raise ExecutionNotAllowed("Engine is paused")
        if not self.risk_manager.is_execution_allowed():
            reason = (
                'circuit breaker active' if self.risk_manager.circuit_breaker_active
                else f'volatility {self.risk_manager.volatility_band}'
            )
            logger.error(f"Cycle rejected: {reason}")
            raise ExecutionNotAllowed(f"Execution not allowed: {reason}")

    def _try(self, venue: YieldSource, operation: str, *args: int) -> OperationResult:
        """Call a venue, converting YieldSourceError into a failed result."""
        try:
            amount = getattr(venue, operation)(*args)
        except YieldSourceError as e:
            logger.warning(f"{venue.name}.{operation} failed: {e}")
            return OperationResult(venue.name, operation, ok=False, error=str(e))
        return OperationResult(venue.name, operation, ok=True, amount=amount)

    def _harvest(self, report: CycleReport) -> None:
        for venue in (self.safe_source, self.growth_source):
            result = self._try(venue, 'claim_rewards')
            report.harvest_results.append(result)
            if result.ok:
                report.harvested += result.amount

        self.idle_balance += report.harvested
        failed = [r.venue for r in report.harvest_results if not r.ok]
        if failed:
            logger.warning(
                f"Partial harvest: {format_wad(report.harvested)} collected, "
                f"failed venues={failed}"
            )
        else:
            logger.info(f"Harvested {format_wad(report.harvested)}")

    def _pay_bounty(self, caller: Principal, report: CycleReport) -> None:
        if report.harvested == 0:
            return
        bounty = min(self.auto_compounder.calculate_bounty(report.harvested), self.idle_balance)
        if bounty == 0:
            return
        self.idle_balance -= bounty
        self.ledger.credit(caller.name, bounty)
        report.bounty_paid = bounty
        logger.info(f"Bounty {format_wad(bounty)} paid to {caller}")

    def _settle_pending_withdrawals(self, report: CycleReport) -> None:
        for venue in (self.safe_source, self.growth_source):
            if not self.pending_withdrawal[venue.name]:
                continue
            result = self._try(venue, 'claim_withdraw')
            report.movement_results.append(result)
            if result.ok and result.amount > 0:
                self._receive_withdrawal(result.amount)
            if result.ok and not venue.has_pending_withdrawal:
                self.pending_withdrawal[venue.name] = False
                logger.info(f"{venue.name}: pending withdrawal settled")

    def _receive_withdrawal(self, amount: int) -> None:
        """Route settled venue funds: vault debts first, remainder stays idle."""
        to_vault = min(amount, self.owed_to_vault)
        if to_vault > 0:
            self.owed_to_vault -= to_vault
            self.ledger.credit(self.vault_account, to_vault)
            logger.info(f"Delivered {format_wad(to_vault)} owed to vault")
        self.idle_balance += amount - to_vault

    # ------------------------------------------------------------------
    # Capital movement
    # ------------------------------------------------------------------

    def _allocate(self, amount: int, report: Optional[CycleReport] = None) -> int:
        """Deposit amount from idle at the volatility-adjusted split."""
        safe_bps, _ = self.risk_manager.get_volatility_adjusted_allocation()
        safe_amount = bps_mul(amount, safe_bps)
        growth_amount = amount - safe_amount

        deployed = 0
        for venue, venue_amount in ((self.safe_source, safe_amount), (self.growth_source, growth_amount)):
            if venue_amount == 0:
                continue
            result = self._deposit(venue, venue_amount)
            if report is not None:
                report.movement_results.append(result)
            if result.ok:
                deployed += venue_amount
        return deployed

    def _deposit(self, venue: YieldSource, amount: int) -> OperationResult:
        """
        Deposit from idle into a venue.

        Growth deposits must respect the single-venue cap, and every
        credited amount must be within slippage tolerance. Both checks
        raise. A venue failure leaves the amount idle.
        """
        if venue is self.growth_source:
            self.risk_manager.validate_allocation(
                self.growth_source.total_value() + amount, self.total_managed_value()
            )

        result = self._try(venue, 'deposit_value', amount)
        if result.ok:
            self.idle_balance -= amount
            self.risk_manager.validate_slippage(amount, result.amount)
        return result

    def _move(self, source: YieldSource, destination: YieldSource, amount: int,
              report: CycleReport) -> bool:
        """
        Withdraw from source and deposit whatever settles into destination.

        Returns:
            True if the withdrawal request went through
        """
        request = self._try(source, 'request_withdraw', amount)
        report.movement_results.append(request)
        if not request.ok:
            return False

        claim = self._try(source, 'claim_withdraw')
        report.movement_results.append(claim)
        received = claim.amount if claim.ok else 0
        if received < request.amount:
            self.pending_withdrawal[source.name] = True
            logger.info(
                f"{source.name}: {format_wad(request.amount - received)} pending settlement"
            )

        if received > 0:
            self.idle_balance += received
            report.movement_results.append(self._deposit(destination, received))
        return True

    def _execute_rebalance(self, action: RebalanceAction, report: CycleReport) -> bool:
        if action.safe_delta > 0:
            moved = self._move(self.growth_source, self.safe_source, action.safe_delta, report)
        elif action.growth_delta > 0:
            moved = self._move(self.safe_source, self.growth_source, action.growth_delta, report)
        else:
            # Time-triggered with nothing to move.
            moved = True

        if moved:
            logger.info(
                f"Rebalance executed: safe_delta={format_wad(action.safe_delta)}, "
                f"growth_delta={format_wad(action.growth_delta)}, urgency={action.urgency}"
            )
        else:
            logger.warning("Rebalance movement failed; will retry next cycle")
        return moved

    # ------------------------------------------------------------------
    # Vault-facing surface
    # ------------------------------------------------------------------

    @non_reentrant
    def deploy_capital(self, caller: Principal, amount: int) -> int:
        """
        Accept capital from the vault and deploy it.

        Capital stays idle while paused or while execution is not allowed.

        Returns:
            Amount deposited into venues
        """
        require_caller(caller, self.principals.vault, 'deploy_capital')
        if amount <= 0:
            raise ValueError(f"deploy amount must be positive, got {amount}")

        self.idle_balance += amount
        if self.paused or not self.risk_manager.is_execution_allowed():
            logger.warning(f"Capital {format_wad(amount)} held idle: execution not allowed")
            return 0

        deployed = self._allocate(amount)
        logger.info(f"Deployed {format_wad(deployed)} of {format_wad(amount)}")
        return deployed

    @non_reentrant
    def withdraw_capital(self, caller: Principal, amount: int) -> int:
        """
        Return capital to the vault: idle first, then safe, then growth.

        Amounts a venue cannot settle immediately are owed to the vault and
        delivered when the pending withdrawal settles. A venue that fails
        is skipped and the next one is tried; whatever was collected is
        still delivered, so the shortfall is the only effect of a failure.

        Returns:
            Amount delivered to the vault now (owed and unfilled amounts
            excluded)
        """
        require_caller(caller, self.principals.vault, 'withdraw_capital')
        if amount <= 0:
            raise ValueError(f"withdraw amount must be positive, got {amount}")

        from_idle = min(self.idle_balance, amount)
        self.idle_balance -= from_idle
        delivered = from_idle
        remaining = amount - from_idle

        try:
            for venue in (self.safe_source, self.growth_source):
                if remaining == 0:
                    break
                valuation = self._try(venue, 'total_value')
                if not valuation.ok:
                    continue
                take = min(remaining, valuation.amount)
                if take == 0:
                    continue
                request = self._try(venue, 'request_withdraw', take)
                if not request.ok:
                    continue
                remaining -= request.amount
                claim = self._try(venue, 'claim_withdraw')
                claimed = claim.amount if claim.ok else 0
                delivered += claimed
                if claimed < request.amount:
                    self.pending_withdrawal[venue.name] = True
                    self.owed_to_vault += request.amount - claimed
        finally:
            # Whatever left idle or a venue reaches the vault, even on abort
            if delivered > 0:
                self.ledger.credit(self.vault_account, delivered)

        if remaining > 0:
            logger.warning(
                f"Withdrawal short by {format_wad(remaining)}: venue unavailable, "
                f"vault may retry"
            )
        logger.info(
            f"Withdrew {format_wad(delivered)} to vault "
            f"(requested {format_wad(amount)}, owed {format_wad(self.owed_to_vault)})"
        )
        return delivered

    def total_managed_value(self) -> int:
        """Idle plus both venues, excluding value already owed to the vault."""
        gross = self.idle_balance + self.safe_source.total_value() + self.growth_source.total_value()
        return safe_sub(gross, self.owed_to_vault)

    # ------------------------------------------------------------------
    # Recovery and emergency
    # ------------------------------------------------------------------

    @non_reentrant
    def check_recovery(self) -> bool:
        """
        Attempt a circuit-breaker reset against current value.

        Callable by anyone; the cycle gate rejects while the breaker is
        active, so recovery has to be attempted outside the cycle.
        """
        return self.risk_manager.try_reset_circuit_breaker(
            self.principal, self.total_managed_value()
        )

    @non_reentrant
    def emergency_withdraw_all(self, caller: Principal) -> Dict[str, Any]:
        """
        Pull everything out of both venues, close the hedge and sweep to the vault.

        The engine is paused before anything else happens and stays paused
        even if a venue call fails. Venue failures are reported, not raised,
        so one broken venue does not trap the other's capital.

        Returns:
            Summary with swept amount, venue results and hedge PnL
        """
        require_caller(caller, self.principals.operator, 'emergency_withdraw_all')
        self.paused = True
        logger.critical(f"EMERGENCY WITHDRAWAL initiated by {caller}")

        hedge_pnl = 0
        try:
            hedge_pnl = self.hedging_engine.close_hedge(self.principal)
        except PriceValidationError as e:
            logger.error(f"Hedge close could not be priced ({e}); abandoning position")
            self.hedging_engine.close_hedge(self.principal, settle=False)

        # Safe to call repeatedly: a second call collects exits that were
        # still pending the first time.
        results: List[OperationResult] = []
        for venue in (self.safe_source, self.growth_source):
            valuation = self._try(venue, 'total_value')
            if not valuation.ok:
                results.append(valuation)
            elif valuation.amount > 0:
                results.append(self._try(venue, 'request_withdraw', valuation.amount))
            claim = self._try(venue, 'claim_withdraw')
            results.append(claim)
            if claim.ok:
                self.idle_balance += claim.amount
            if venue.has_pending_withdrawal:
                self.pending_withdrawal[venue.name] = True

        swept = self.idle_balance
        if swept > 0:
            self.ledger.credit(self.vault_account, swept)
            self.idle_balance = 0
            self.owed_to_vault = safe_sub(self.owed_to_vault, swept)

        logger.critical(
            f"EMERGENCY WITHDRAWAL complete: swept {format_wad(swept)} to vault, "
            f"failures={[r.venue + '.' + r.operation for r in results if not r.ok]}"
        )
        return {
            'swept': swept,
            'hedge_pnl': hedge_pnl,
            'results': results,
            'pending': dict(self.pending_withdrawal),
        }

    def pause(self, caller: Principal) -> None:
        require_caller(caller, self.principals.operator, 'pause')
        self.paused = True
        logger.warning(f"Engine paused by {caller}")

    def unpause(self, caller: Principal) -> None:
        require_caller(caller, self.principals.operator, 'unpause')
        self.paused = False
        logger.warning(f"Engine unpaused by {caller}")

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def now(self) -> int:
        return self._clock()

    def get_current_allocation(self) -> Dict[str, int]:
        """Current safe/growth split in bps of deployed value."""
        safe_value = self.safe_source.total_value()
        growth_value = self.growth_source.total_value()
        total = safe_value + growth_value
        if total == 0:
            return {'safe_bps': 0, 'growth_bps': 0}
        safe_bps = bps_of(safe_value, total)
        return {'safe_bps': safe_bps, 'growth_bps': BPS - safe_bps}
