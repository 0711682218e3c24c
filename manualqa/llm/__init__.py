"""
LLM client module for OpenAI-compatible chat and embedding APIs.
"""

from .client import ChatClient, create_client

__all__ = ["ChatClient", "create_client"]
