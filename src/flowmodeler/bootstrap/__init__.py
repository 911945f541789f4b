"""Bootstrap (composition root) for the Flow Modeler persistence layer.

Builds the persistence handles once, at process startup, in a fixed order:

    connection source -> migration runner
    connection source -> session factory -> transaction manager

Import rules:
- Entry points import *this* package (not the infrastructure modules).
- This package may import `flowmodeler.infrastructure`, `flowmodeler.config`
  and `flowmodeler.errors`.
- Inner layers must not import `flowmodeler.bootstrap`.
"""

from .bootstrap import PersistenceContext, bootstrap

__all__ = ["PersistenceContext", "bootstrap"]
