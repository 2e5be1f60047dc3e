"""Correctness oracle for same-account concurrent transaction races."""

__version__ = "0.1.0"
