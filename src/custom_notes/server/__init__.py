"""MCP server for Custom Notes."""
