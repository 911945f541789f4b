"""FLOW MODELER

Persistence infrastructure for the Flow Modeler business-process-management
application: a pooled connection source, an ORM session factory over the
modeler's domain types, a transaction manager, and a schema-migration runner
that keeps its bookkeeping tables under the ``ACT_DE_`` prefix.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
