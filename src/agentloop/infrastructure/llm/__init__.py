"""Model provider adapters and stream normalization."""
