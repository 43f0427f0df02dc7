"""Post-commit notification events."""
