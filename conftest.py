"""Keeps the repository root importable when the suite runs from a checkout."""
