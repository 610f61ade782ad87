"""Traccar REST endpoint modules."""
