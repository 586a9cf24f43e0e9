"""Observability for the web tier.

structlog request context plus an in-process metric registry, an
instrumenting filter that feeds it, and a servlet that serves snapshots.
"""
