"""Relational core: ORM models, sessions, repositories and I/O schemas."""
