"""Agent capability interface and the shared chat-API implementation.

The orchestrator depends only on AgentAdapter. ChatAgent implements it with
the template method used for every chat-completion backend:

    run_reviewer() → new conversation → _converse()
                   → _call_with_retry() → _call_api()   ← only this differs per backend
                   → _parse() → ReviewerOutput.from_dict()

Subclasses implement two things only:
  - __init__: validate and store the async SDK client
  - _call_api: make one raw API call over the conversation and return the text
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from prrally_core.errors import AgentError, ContractViolationError
from prrally_core.events import AgentText
from prrally_core.models import ReviewerOutput, RevieweeOutput
from prrally_core.prompts import REVIEWEE_OUTPUT_FORMAT, REVIEWER_OUTPUT_FORMAT

if TYPE_CHECKING:
    from prrally_core.events import EventSink, RallyEvent
    from prrally_core.models import Context

logger = logging.getLogger(__name__)

_MAX_RETRIES = 3
_MAX_TOKENS = 8192


class AgentAdapter(ABC):
    """What the orchestrator needs from a reviewer or reviewee backend.

    Each call resolves to exactly one structured output or raises. Progress
    may be streamed to the event sink but is never used for control flow.
    """

    def __init__(self) -> None:
        self._event_sink: EventSink | None = None

    def set_event_sink(self, sink: EventSink | None) -> None:
        self._event_sink = sink

    def _emit(self, event: RallyEvent) -> None:
        if self._event_sink is not None:
            self._event_sink.send(event)

    @abstractmethod
    async def run_reviewer(self, prompt: str, context: Context) -> ReviewerOutput:
        """Start a review conversation and return the verdict."""

    @abstractmethod
    async def continue_reviewer(self, prompt: str) -> ReviewerOutput:
        """Send a follow-up to the open review conversation."""

    @abstractmethod
    async def run_reviewee(self, prompt: str, context: Context) -> RevieweeOutput:
        """Start a fix conversation and return the fix result."""

    @abstractmethod
    async def continue_reviewee(self, message: str) -> RevieweeOutput:
        """Send a follow-up to the open fix conversation."""


class ChatAgent(AgentAdapter):
    MODEL: str = ""
    TEMPERATURE: float = 0.2
    MAX_RETRIES: int = _MAX_RETRIES
    MAX_TOKENS: int = _MAX_TOKENS

    def __init__(self, model: str | None = None) -> None:
        super().__init__()
        self.model = model or self.MODEL
        self._reviewer_messages: list[dict] = []
        self._reviewee_messages: list[dict] = []

    # ------------------------------------------------------------------ #
    # Capability                                                           #
    # ------------------------------------------------------------------ #

    async def run_reviewer(self, prompt: str, context: Context) -> ReviewerOutput:
        self._reviewer_messages = [{"role": "user", "content": prompt}]
        raw = await self._converse(self._reviewer_system_prompt(context), self._reviewer_messages)
        return ReviewerOutput.from_dict(self._parse(raw))

    async def continue_reviewer(self, prompt: str) -> ReviewerOutput:
        self._reviewer_messages.append({"role": "user", "content": prompt})
        raw = await self._converse(self._reviewer_system_prompt(None), self._reviewer_messages)
        return ReviewerOutput.from_dict(self._parse(raw))

    async def run_reviewee(self, prompt: str, context: Context) -> RevieweeOutput:
        self._reviewee_messages = [{"role": "user", "content": prompt}]
        raw = await self._converse(self._reviewee_system_prompt(context), self._reviewee_messages)
        return RevieweeOutput.from_dict(self._parse(raw))

    async def continue_reviewee(self, message: str) -> RevieweeOutput:
        self._reviewee_messages.append({"role": "user", "content": message})
        raw = await self._converse(self._reviewee_system_prompt(None), self._reviewee_messages)
        return RevieweeOutput.from_dict(self._parse(raw))

    # ------------------------------------------------------------------ #
    # Abstract: implement in each backend                                  #
    # ------------------------------------------------------------------ #

    @abstractmethod
    async def _call_api(self, system_prompt: str, messages: list[dict]) -> str:
        """Make a single API call and return the raw text response.

        Should raise on failure; _call_with_retry handles retries and logging.
        """

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    async def _converse(self, system_prompt: str, messages: list[dict]) -> str:
        raw = await self._call_with_retry(system_prompt, messages)
        messages.append({"role": "assistant", "content": raw})
        self._emit(AgentText(raw))
        return raw

    async def _call_with_retry(self, system_prompt: str, messages: list[dict]) -> str:
        """Retry _call_api up to MAX_RETRIES times with exponential backoff."""
        for attempt in range(self.MAX_RETRIES):
            try:
                return await self._call_api(system_prompt, messages)
            except Exception as e:
                if attempt == self.MAX_RETRIES - 1:
                    logger.error(
                        "%s API failed after %d attempts: %s",
                        self.__class__.__name__,
                        self.MAX_RETRIES,
                        e,
                    )
                    raise AgentError(
                        f"{self.__class__.__name__} API failed after {self.MAX_RETRIES} attempts: {e}"
                    ) from e
                delay = 2**attempt
                logger.warning(
                    "%s API error (attempt %d/%d): %s. Retrying in %ds...",
                    self.__class__.__name__,
                    attempt + 1,
                    self.MAX_RETRIES,
                    e,
                    delay,
                )
                await asyncio.sleep(delay)
        raise AgentError(f"{self.__class__.__name__} made no API attempts")

    def _reviewer_system_prompt(self, context: Context | None) -> str:
        return f"""You are the reviewer in an automated review loop on a GitHub pull request.
A second agent applies your feedback and you re-review until the change is ready to merge.
Approve only when no blocking issues remain.

{REVIEWER_OUTPUT_FORMAT}"""

    def _reviewee_system_prompt(self, context: Context | None) -> str:
        workdir = ""
        if context is not None and context.working_dir:
            workdir = f"\nThe working tree is checked out at `{context.working_dir}`.\n"
        return f"""You are the developer in an automated review loop on a GitHub pull request.
Apply the reviewer's feedback, report what you changed, and ask instead of guessing when
feedback is ambiguous or a change needs the author's consent.
{workdir}
{REVIEWEE_OUTPUT_FORMAT}"""

    def _parse(self, raw: str) -> dict:
        """Parse the model's raw text response into a JSON object.

        Only the outer ```json fence is stripped, so code blocks inside
        string values survive.
        """
        cleaned = re.sub(r"^```(?:json)?\s*", "", (raw or "").strip())
        cleaned = re.sub(r"\s*```$", "", cleaned.strip())
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as e:
            logger.warning("%s: failed to parse response as JSON: %s", self.__class__.__name__, (raw or "")[:200])
            raise ContractViolationError(f"{self.__class__.__name__} returned non-JSON output") from e
        if not isinstance(data, dict):
            raise ContractViolationError(f"{self.__class__.__name__} returned JSON that is not an object")
        return data
