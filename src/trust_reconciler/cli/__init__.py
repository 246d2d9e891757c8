"""Command-line interface for trust-reconciler."""
