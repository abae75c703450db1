"""
Core engine components.

Modules:
    - strategy_engine: Orchestrator running the control cycle
    - settings: Validated parameter sets (pydantic)
    - access: Principals and re-entrancy guards
    - exceptions: Failure taxonomy
"""
