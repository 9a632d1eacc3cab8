"""HTTP API for the context engine."""
