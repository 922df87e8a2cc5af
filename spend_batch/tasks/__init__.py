"""Batch task protocol, registry and recompute tasks."""
