"""Finite-difference pricing of American options."""
