"""
SDK for AI Tier Router.

Provides the OpenAI generation provider and a factory wiring the router.
"""

from .openai_client import OpenAIProvider, build_router

__all__ = ["OpenAIProvider", "build_router"]
