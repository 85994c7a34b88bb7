"""Shared helpers: logging, rate limiting and request coalescing."""
