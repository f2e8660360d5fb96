"""Data-source clients for neighborhood geometry and statistics."""
