"""Run graph nodes."""
