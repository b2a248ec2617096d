"""CLI module for classping."""
