"""Spaced-repetition scheduling and review-ordering engine."""
