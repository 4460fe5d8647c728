"""Prometheus instrumentation for the stream relay."""
