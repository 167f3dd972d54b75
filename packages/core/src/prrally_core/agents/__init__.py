"""Agent backends for the reviewer and reviewee roles."""

from prrally_core.agents.base import AgentAdapter, ChatAgent

__all__ = ["AgentAdapter", "ChatAgent"]
