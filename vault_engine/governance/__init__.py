"""
Governance components.

Modules:
    - timelock: Delayed execution of component parameter setters
"""

from vault_engine.governance.timelock import OperationStatus, QueuedOperation, TimelockQueue

__all__ = ['OperationStatus', 'QueuedOperation', 'TimelockQueue']
