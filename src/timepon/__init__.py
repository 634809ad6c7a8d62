"""Timepon: file metadata tracking for AI-assisted development.

Watches a workspace, records a creation time, a one-line summary and up to
three tags for every file, keeps them in ``_timepon.yaml`` and serves them to
agents through an MCP server.
"""

__version__ = "1.0.0"
