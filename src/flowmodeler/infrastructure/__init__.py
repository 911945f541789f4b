"""Infrastructure for the Flow Modeler: everything that talks to a database."""
