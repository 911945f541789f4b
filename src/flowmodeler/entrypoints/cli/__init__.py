"""Command-line interface for Flow Modeler."""
