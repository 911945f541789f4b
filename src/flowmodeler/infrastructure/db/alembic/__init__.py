"""Packaged changelog for the modeler schema (Alembic scripts)."""
