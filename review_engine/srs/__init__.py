"""Spaced-repetition scheduling, ordering and correction."""
