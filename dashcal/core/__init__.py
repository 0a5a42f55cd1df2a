"""Configuration, logging, timezone and HTTP client plumbing."""
