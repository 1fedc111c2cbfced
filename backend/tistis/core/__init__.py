"""Core Layer: pure domain logic, no IO, no async, no DB.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - All functions are deterministic; the current time is always passed in

Design Decisions:
    - Functional core separated from the imperative shell in services/
"""
