"""Entrypoints (inbound adapters) for Flow Modeler.

Parse and validate inputs, resolve configuration, call the bootstrapper, and
present results.

Dependency rule: may import `flowmodeler.bootstrap` and `flowmodeler.config`;
avoid reaching into `flowmodeler.infrastructure` for anything but read-only
inspection.
"""
