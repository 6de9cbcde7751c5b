"""Domain models and the agent execution loop."""
