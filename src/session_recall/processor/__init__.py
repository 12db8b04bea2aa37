"""Parsing, exclusion detection, embedding, and indexing of archived transcripts."""
