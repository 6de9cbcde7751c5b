"""Infrastructure adapters: tools and model providers."""
