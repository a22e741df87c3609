"""Shared infrastructure: configuration, HTTP client pool, clocks and health tracking."""
