"""Application layer: wiring, sessions and execution."""
