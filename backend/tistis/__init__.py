"""TIS TIS Backend: multi-tenant API, webhooks, inventory, reports and voice metering.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)
"""

__version__ = "1.0.0"
