"""Core infrastructure: configuration, logging, console output."""
