"""SQLAlchemy Declarative Base: shared base class for all ORM models.

Invariants:
    - All models inherit from Base
    - Base is the single source of truth for table metadata (create_all, Alembic autogenerate)

Design Decisions:
    - Separate file for Base: avoids circular imports between models
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all TIS TIS ORM models."""
    pass
