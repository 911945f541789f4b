"""Database plumbing: connection source, ORM sessions, transactions, migrations.

Import rules:
- May import `flowmodeler.config`, `flowmodeler.errors` and `flowmodeler.redaction`.
- Must not import `flowmodeler.bootstrap` or the entrypoints.
"""
