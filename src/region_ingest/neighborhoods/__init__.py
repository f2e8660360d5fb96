"""Neighborhood dataset persistence."""
