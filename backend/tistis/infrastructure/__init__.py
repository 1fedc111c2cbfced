"""Infrastructure Layer: database, external service clients and cross-cutting concerns.

Invariants:
    - All external calls wrapped with retry/timeout/error mapping
    - Clients raise TisTisError subclasses, never raw SDK or transport exceptions
"""
