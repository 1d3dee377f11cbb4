"""Reusable test doubles."""
