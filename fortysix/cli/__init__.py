"""CLI module for forty-six."""
