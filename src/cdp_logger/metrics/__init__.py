"""Prometheus metrics for the CDP Logger client."""
