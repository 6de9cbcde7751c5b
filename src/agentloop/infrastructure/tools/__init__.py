"""Tool contract implementation, registry and sandbox."""
