"""Exceptions raised by the rally core.

Anything raised from here unwinds out of Orchestrator.run(); recoverable
conditions are reported as Log events instead and never use these types.
Persistence failures come from prrally_store.errors.PersistenceError.
"""

from __future__ import annotations


class RallyError(Exception):
    """Base class for rally failures."""


class ConfigurationError(RallyError):
    """An agent or setting could not be built from configuration."""


class ContextNotSetError(RallyError):
    def __init__(self) -> None:
        super().__init__("Context not set; call set_context() before run()")


class AgentTimeoutError(RallyError):
    def __init__(self, role: str, timeout_secs: float) -> None:
        self.role = role
        self.timeout_secs = timeout_secs
        super().__init__(f"{role} timeout after {timeout_secs:g} seconds")


class ReviewerTimeoutError(AgentTimeoutError):
    def __init__(self, timeout_secs: float) -> None:
        super().__init__("Reviewer", timeout_secs)


class RevieweeTimeoutError(AgentTimeoutError):
    def __init__(self, timeout_secs: float) -> None:
        super().__init__("Reviewee", timeout_secs)


class ContractViolationError(RallyError):
    """An agent returned output that does not satisfy the output contract."""


class AgentError(RallyError):
    """An agent backend kept failing after its own retries."""


class InvalidStateError(RallyError):
    """The orchestrator cannot perform the call in its current state."""
