"""Low-level tensor operations."""
