"""Optimistic-locking workflow transitions for persisted records.

This package provides:
- A transition guard that writes a record's new workflow state only if the
  stored state still matches what the caller read
- Row locking around the state update and the full record save
- Initial state materialization so new records are queryable by state
- Per-state query scopes
- A PostgreSQL record store built on asyncpg
"""
