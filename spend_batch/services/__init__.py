"""Batch execution and recompute coordination services."""
