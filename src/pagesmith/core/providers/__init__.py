"""Concrete reasoning-agent service clients."""

from pagesmith.core.providers.anthropic import AnthropicAgentClient

__all__ = ["AnthropicAgentClient"]
