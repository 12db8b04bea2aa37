"""Unified archive of source transcripts."""
