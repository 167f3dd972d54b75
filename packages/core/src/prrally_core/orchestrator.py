"""Rally orchestration: the reviewer/reviewee loop.

Each iteration runs the reviewer, then (unless it approved) the reviewee,
and ends in one of four outcomes. Every state transition is written to the
session store before the matching event is emitted; a failed write unwinds
out of run() and leaves the orchestrator unusable, because its in-memory
state no longer matches what a resumed process would read from disk.

Agent calls are bounded by `timeout_secs` and are not retried here.
Cancelling the task running run() interrupts an in-flight agent call
immediately.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from prrally_core import events
from prrally_core.agents.anthropic import AnthropicAgent
from prrally_core.agents.base import AgentAdapter
from prrally_core.agents.openai import OpenAIAgent
from prrally_core.config import load_custom_prompt, positive_int
from prrally_core.errors import (
    ConfigurationError,
    ContextNotSetError,
    InvalidStateError,
    RevieweeTimeoutError,
    ReviewerTimeoutError,
)
from prrally_core.events import EventSink, RallyEvent
from prrally_core.models import (
    Context,
    PermissionRequest,
    ReviewAction,
    ReviewerOutput,
    RevieweeOutput,
    RevieweeStatus,
)
from prrally_core.prompts import (
    build_clarification_prompt,
    build_permission_granted_prompt,
    build_rereview_prompt,
    build_reviewee_prompt,
    build_reviewer_prompt,
    summarize_fix,
)
from prrally_store.errors import PersistenceError
from prrally_store.models import HistoryEntryType, RallySession, RallyState
from prrally_store.session import SessionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RallyResult:
    iteration: int


@dataclass(frozen=True)
class ApprovedResult(RallyResult):
    summary: str


@dataclass(frozen=True)
class MaxIterationsResult(RallyResult):
    pass


@dataclass(frozen=True)
class AbortedResult(RallyResult):
    """Paused for a human; resume with continue_with_*() and call run() again."""

    reason: str
    question: str | None = None
    permission: PermissionRequest | None = None


@dataclass(frozen=True)
class ErrorResult(RallyResult):
    error: str


def fix_outcome(fix: RevieweeOutput, iteration: int) -> RallyResult | None:
    """Map a validated reviewee output to the result it ends the rally with, or None if it completed."""
    if fix.status is RevieweeStatus.COMPLETED:
        return None
    if fix.status is RevieweeStatus.NEEDS_CLARIFICATION:
        return AbortedResult(iteration=iteration, reason=f"Clarification needed: {fix.question}", question=fix.question)
    if fix.status is RevieweeStatus.NEEDS_PERMISSION:
        perm = fix.permission_request
        return AbortedResult(iteration=iteration, reason=f"Permission needed: {perm.action}", permission=perm)
    return ErrorResult(iteration=iteration, error=fix.error_details or "Unknown error")


def _create_adapter(role: str, config: dict) -> AgentAdapter:
    agent_config = config.get(role) or {}
    agent = agent_config.get("agent", "anthropic")
    model = agent_config.get("model")
    try:
        if agent == "anthropic":
            if not config.get("anthropic_api_key"):
                raise ConfigurationError(f"ANTHROPIC_API_KEY is required for the {role} agent.")
            return AnthropicAgent(api_key=config["anthropic_api_key"], model=model)
        if agent == "openai":
            if not config.get("openai_api_key"):
                raise ConfigurationError(f"OPENAI_API_KEY is required for the {role} agent.")
            return OpenAIAgent(api_key=config["openai_api_key"], model=model)
    except ImportError as e:
        raise ConfigurationError(f"Cannot create {role} agent {agent!r}: {e}") from e
    raise ConfigurationError(f"Unknown {role} agent: {agent!r}. Choose 'anthropic' or 'openai'.")


class Orchestrator:
    def __init__(
        self,
        repo: str,
        pr_number: int,
        config: dict,
        event_sink: EventSink | None = None,
        store: SessionStore | None = None,
    ):
        self.repo = repo
        self.pr_number = pr_number
        self._max_iterations = positive_int(config, "max_iterations")
        self._timeout_secs = positive_int(config, "timeout_secs")
        self._reviewer_prompt = load_custom_prompt(config, "reviewer")
        self._reviewee_prompt = load_custom_prompt(config, "reviewee")

        self._reviewer = _create_adapter("reviewer", config)
        self._reviewee = _create_adapter("reviewee", config)
        self._reviewer.set_event_sink(event_sink)
        self._reviewee.set_event_sink(event_sink)

        self._event_sink = event_sink
        self._store = store if store is not None else SessionStore(config.get("rally_dir"))
        self.session: RallySession = self._store.create_session(repo, pr_number)
        self._context: Context | None = None
        self._stale = False
        self.last_review: ReviewerOutput | None = None
        self.last_fix: RevieweeOutput | None = None

    def set_context(self, context: Context) -> None:
        self._context = context

    async def run(self) -> RallyResult:
        """Drive iterations until approval, a pause, a reported error or the budget runs out."""
        self._check_usable()
        if self._context is None:
            raise ContextNotSetError()
        context = self._context

        self._send(events.StateChanged(self.session.state))

        while self.session.iteration < self._max_iterations:
            iteration = self.session.increment_iteration()
            self._send(events.IterationStarted(iteration))
            self._send(events.Log(f"Starting iteration {iteration}"))

            self._transition(RallyState.REVIEWER_REVIEWING)
            review = await self._run_reviewer(context, iteration)

            self._store.write_history_entry(
                self.repo, self.pr_number, iteration, HistoryEntryType.REVIEW, review.to_dict()
            )
            self._send(events.ReviewCompleted(review))
            self.last_review = review

            if review.action is ReviewAction.APPROVE:
                self._persist_state(RallyState.COMPLETED)
                self._send(events.Approved(review.summary))
                self._send(events.StateChanged(RallyState.COMPLETED))
                return ApprovedResult(iteration=iteration, summary=review.summary)

            self._transition(RallyState.REVIEWEE_FIX)
            fix = await self._run_reviewee(context, review, iteration)
            fix.validate()

            self._store.write_history_entry(self.repo, self.pr_number, iteration, HistoryEntryType.FIX, fix.to_dict())
            self._send(events.FixCompleted(fix))

            outcome = self._settle(fix, iteration)
            if outcome is not None:
                return outcome

        self._send(events.Log(f"Max iterations ({self._max_iterations}) reached"))
        return MaxIterationsResult(iteration=self.session.iteration)

    async def continue_with_clarification(self, answer: str) -> RevieweeOutput:
        """Forward a human answer to both agents.

        The reviewer's reply is discarded. The reviewee's continuation is
        recorded for the current iteration and returned; a completed fix puts
        the rally back in RevieweeFix, while another question, a permission
        request or an error pauses or stops it just as run() would.
        """
        self._check_usable()
        self._require_state(RallyState.WAITING_FOR_CLARIFICATION)

        await self._with_timeout(
            self._reviewer.continue_reviewer(build_clarification_prompt(answer)), ReviewerTimeoutError
        )
        fix = await self._with_timeout(self._reviewee.continue_reviewee(answer), RevieweeTimeoutError)
        return self._resume_with(fix)

    async def continue_with_permission(self, action: str) -> RevieweeOutput:
        self._check_usable()
        self._require_state(RallyState.WAITING_FOR_PERMISSION)

        fix = await self._with_timeout(
            self._reviewee.continue_reviewee(build_permission_granted_prompt(action)), RevieweeTimeoutError
        )
        return self._resume_with(fix)

    # ------------------------------------------------------------------ #

    def _resume_with(self, fix: RevieweeOutput) -> RevieweeOutput:
        fix.validate()
        iteration = self.session.iteration
        self._store.write_history_entry(self.repo, self.pr_number, iteration, HistoryEntryType.FIX, fix.to_dict())
        self._send(events.FixCompleted(fix))
        if self._settle(fix, iteration) is None:
            self._transition(RallyState.REVIEWEE_FIX)
        return fix

    def _settle(self, fix: RevieweeOutput, iteration: int) -> RallyResult | None:
        """Persist and announce where `fix` leaves the rally. None means keep going."""
        outcome = fix_outcome(fix, iteration)
        if outcome is None:
            self._send(events.Log(f"Fix completed: {fix.summary}"))
            self.last_fix = fix
        elif isinstance(outcome, ErrorResult):
            self._persist_state(RallyState.ERROR)
            self._send(events.Error(outcome.error))
            self._send(events.StateChanged(RallyState.ERROR))
        elif outcome.question is not None:
            self._persist_state(RallyState.WAITING_FOR_CLARIFICATION)
            self._send(events.ClarificationNeeded(outcome.question))
            self._send(events.StateChanged(RallyState.WAITING_FOR_CLARIFICATION))
        else:
            self._persist_state(RallyState.WAITING_FOR_PERMISSION)
            self._send(events.PermissionNeeded(outcome.permission.action, outcome.permission.reason))
            self._send(events.StateChanged(RallyState.WAITING_FOR_PERMISSION))
        return outcome

    async def _run_reviewer(self, context: Context, iteration: int) -> ReviewerOutput:
        if iteration == 1:
            prompt = build_reviewer_prompt(context, iteration, self._reviewer_prompt)
        else:
            prompt = build_rereview_prompt(context, iteration, summarize_fix(self.last_fix))
        return await self._with_timeout(self._reviewer.run_reviewer(prompt, context), ReviewerTimeoutError)

    async def _run_reviewee(self, context: Context, review: ReviewerOutput, iteration: int) -> RevieweeOutput:
        prompt = build_reviewee_prompt(context, review, iteration, self._reviewee_prompt)
        return await self._with_timeout(self._reviewee.run_reviewee(prompt, context), RevieweeTimeoutError)

    async def _with_timeout(self, coro, timeout_error):
        try:
            return await asyncio.wait_for(coro, timeout=self._timeout_secs)
        except asyncio.TimeoutError:
            logger.error("%s#%d: agent call timed out after %ss", self.repo, self.pr_number, self._timeout_secs)
            raise timeout_error(self._timeout_secs) from None

    def _transition(self, state: RallyState) -> None:
        self._persist_state(state)
        self._send(events.StateChanged(state))

    def _persist_state(self, state: RallyState) -> None:
        self.session.update_state(state)
        try:
            self._store.write_session(self.session)
        except PersistenceError:
            self._stale = True
            raise

    def _check_usable(self) -> None:
        if self._stale:
            raise InvalidStateError(
                f"Session for {self.repo}#{self.pr_number} could not be saved; in-memory state is stale"
            )

    def _require_state(self, expected: RallyState) -> None:
        if self.session.state is not expected:
            raise InvalidStateError(f"Expected state {expected.value}, but rally is {self.session.state.value}")

    def _send(self, event: RallyEvent) -> None:
        if self._event_sink is not None:
            self._event_sink.send(event)
