"""Core engine: state, graph spec, runtime, config and errors."""
