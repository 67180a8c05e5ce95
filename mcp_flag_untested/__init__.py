"""
MCP adapter for flag-untested.

Exposes the flag_untested.annotations tool for MCP hosts.
"""

from mcp_flag_untested.tool import handle

__all__ = ["handle"]
__version__ = "0.1.0"
