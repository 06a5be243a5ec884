"""Command handlers for the macup CLI."""
