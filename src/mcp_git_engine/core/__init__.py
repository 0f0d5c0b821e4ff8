"""MCP Git engine core components"""

from .tools import GitToolRouter, GitTools, ToolDefinition, ToolRegistry

__all__ = [
    "GitToolRouter",
    "GitTools",
    "ToolDefinition",
    "ToolRegistry",
]
