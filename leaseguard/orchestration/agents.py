"""
Leaseguard Agent Registry

Explicit registry of analysis agents used by detect steps. The registry is
built at start-up and handed to the step executor.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog

logger = structlog.get_logger(__name__)


class Agent(ABC):
    """An analysis agent that turns a request into findings."""

    @abstractmethod
    async def analyze(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """
        Analyze a request.

        Returns a mapping with at least ``flags``; ``score``, ``severity``,
        ``category`` and ``impact`` are optional.
        """


class FunctionAgent(Agent):
    """Adapts an async callable to the Agent interface."""

    def __init__(self, func: Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]):
        self.func = func

    async def analyze(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return await self.func(request)


class AgentRegistry:
    """Name to agent lookup."""

    def __init__(self):
        self._agents: Dict[str, Agent] = {}

    def register(self, name: str, agent: Agent) -> None:
        """Register an agent under a name, replacing any previous one."""
        if not callable(getattr(agent, "analyze", None)):
            raise TypeError(f"Agent {name!r} has no analyze() method")
        if name in self._agents:
            logger.warning("agent_replaced", agent=name)
        self._agents[name] = agent
        logger.debug("agent_registered", agent=name)

    def unregister(self, name: str) -> bool:
        return self._agents.pop(name, None) is not None

    def resolve(self, name: str) -> Optional[Agent]:
        """Look up an agent by name."""
        return self._agents.get(name)

    def names(self) -> List[str]:
        return sorted(self._agents)

    def __contains__(self, name: str) -> bool:
        return name in self._agents

    def __len__(self) -> int:
        return len(self._agents)
