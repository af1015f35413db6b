"""
MCP server exposing a MongoDB user collection as tools and prompts.
"""

__version__ = "1.0.0"
