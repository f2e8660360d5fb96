"""Shared HTTP client wrapper."""
