"""Repository adapters - Database implementations."""

from .memory import InMemoryGateway
from .postgres import PostgresGateway, run_migrations

__all__ = ["InMemoryGateway", "PostgresGateway", "run_migrations"]
