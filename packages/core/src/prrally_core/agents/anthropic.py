from __future__ import annotations

from prrally_core.agents.base import ChatAgent
from prrally_core.events import AgentThinking


class AnthropicAgent(ChatAgent):
    MODEL = "claude-sonnet-4-20250514"
    TEMPERATURE = 0.3

    def __init__(self, api_key: str, model: str | None = None):
        try:
            from anthropic import AsyncAnthropic
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for this agent. Install it with: pip install anthropic"
            )
        super().__init__(model=model)
        self.client = AsyncAnthropic(api_key=api_key)

    async def _call_api(self, system_prompt: str, messages: list[dict]) -> str:
        response = await self.client.messages.create(
            model=self.model,
            system=system_prompt,
            messages=messages,
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
        )
        text_parts = []
        for block in response.content:
            block_type = getattr(block, "type", None)
            if block_type == "text":
                text_parts.append(block.text)
            elif block_type == "thinking":
                self._emit(AgentThinking(block.thinking))
        return "".join(text_parts).strip()
