"""Hybrid search over indexed exchanges."""
