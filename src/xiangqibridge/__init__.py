"""
xiangqi-bridge package bootstrap.

Subpackages:
- interface: Adapters for HTTP, CLI, and telemetry layers.
- domain: Engine process sessions and command dispatch.
- infrastructure: Configuration and external service clients.
"""

__all__ = ["interface", "domain", "infrastructure"]
