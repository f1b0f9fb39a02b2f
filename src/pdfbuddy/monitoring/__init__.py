"""Progress and lifecycle events for capture consumers (CLI, logs, tests)."""
