"""
Vault Engine Exceptions - Typed failure taxonomy.

Authorization and capital-safety failures abort the orchestrator cycle.
Price validity and timing failures are fatal only to the operation that
depends on them. Yield-source failures are raised by adapters and are
converted into explicit results by the orchestrator for best-effort calls.
"""


class VaultEngineError(Exception):
    """Base class for all engine failures."""
    pass


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------

class AuthorizationError(VaultEngineError):
    """Caller is not permitted to perform the operation."""
    pass


class NotAuthorized(AuthorizationError):
    """
    Caller identity does not match the configured principal.

    Raised by every mutating entry point restricted to a single caller.
    """
    pass


class ReentrantCall(AuthorizationError):
    """
    Guarded entry point was entered while already executing.

    Raised instead of blocking so a recursive or concurrent invocation
    is rejected outright.
    """
    pass


# ---------------------------------------------------------------------------
# Staleness / validity
# ---------------------------------------------------------------------------

class PriceValidationError(VaultEngineError):
    """Price feed returned data that cannot be used."""
    pass


class StalePrice(PriceValidationError):
    """
    Price is older than the staleness threshold or its round is incomplete.
    """
    pass


class InvalidPrice(PriceValidationError):
    """Reported price is zero or negative."""
    pass


# ---------------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------------

class TimingViolation(VaultEngineError):
    """Required interval has not elapsed. State is left untouched."""
    pass


class CompoundTooSoon(TimingViolation):
    """Compound recorded before the minimum compound interval elapsed."""
    pass


class TimelockNotReady(TimingViolation):
    """Governance operation executed before its eta."""
    pass


class TimelockExpired(TimingViolation):
    """Governance operation executed after its grace period ended."""
    pass


# ---------------------------------------------------------------------------
# Capital safety
# ---------------------------------------------------------------------------

class CapitalSafetyError(VaultEngineError):
    """
    Critical failure guarding capital.

    Callers must see these; they are never degraded into a silent outcome.
    """
    pass


class ExecutionNotAllowed(CapitalSafetyError):
    """Circuit breaker active, volatility extreme, or engine paused."""
    pass


class CircuitBreakerTriggered(CapitalSafetyError):
    """
    Drawdown from the high-water mark exceeded the configured maximum.

    The breaker latch stays active after this is raised.
    """
    pass


class AllocationExceedsLimit(CapitalSafetyError):
    """A single venue would hold more than the configured share of capital."""
    pass


class SlippageTooHigh(CapitalSafetyError):
    """Actual amount undershot the expected amount by more than allowed."""
    pass


# ---------------------------------------------------------------------------
# Parameters and collaborators
# ---------------------------------------------------------------------------

class InvalidParameter(VaultEngineError, ValueError):
    """Parameter update rejected because it is out of bounds."""
    pass


class YieldSourceError(VaultEngineError):
    """A yield-source adapter failed to complete a call."""
    pass


class InsufficientBalance(VaultEngineError):
    """Ledger or vault accounting would go negative."""
    pass
