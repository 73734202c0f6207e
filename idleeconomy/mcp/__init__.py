"""Trusted offline-recompute service over MCP."""
