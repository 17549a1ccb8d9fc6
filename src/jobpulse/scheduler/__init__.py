"""Task lifecycle engine: tasks, event bus, registry, signal routing and worker isolation."""
