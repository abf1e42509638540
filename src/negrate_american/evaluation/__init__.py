"""Method comparison and reference validation."""
