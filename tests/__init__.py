"""Flow Modeler test suite.

Folder taxonomy
- unit/         : Isolated, fast checks of a single module/class/function.
- integration/  : Real databases (SQLite files, PostgreSQL via testcontainers).
- functional/   : The ``flowmodeler`` CLI driven end-to-end through CliRunner.
- fixtures/     : Shared pytest plugins (no tests here).

General guidance
- Keep unit fast and deterministic; inject clocks and sleeps instead of waiting.
- Integration hits real dependencies with realistic setup/teardown.
- Functional asserts user-observable results, not internals.
- Property-based tests (hypothesis) live with the layer they exercise.
- Markers: unit, integration, functional, slow
"""
