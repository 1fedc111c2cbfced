"""Services Layer: the IO shell around core/ (queries, external calls, audit).

Invariants:
    - Services take an AsyncSession and never commit on behalf of another service
    - Tenant isolation: every query filters by tenant_id

Design Decisions:
    - One service module per feature for locality
"""
