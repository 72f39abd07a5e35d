"""Workout-to-location reconciliation for logged gym sessions."""

__version__ = "0.1.0"
