"""Core domain and protocol definitions."""
