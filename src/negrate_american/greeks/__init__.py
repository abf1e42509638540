"""Bump-and-reprice Greeks."""
