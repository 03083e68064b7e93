"""Agent gateway connections: status tracking and streaming chat.

Agents are reached through an OpenAI-compatible ``/v1/chat/completions``
endpoint (the OpenClaw gateway). Only one request per agent is in flight;
a new message cancels the previous one.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime

import httpx

from clawde.models import AgentConfig, ConnectionStatus, ProjectContext

logger = logging.getLogger(__name__)

GATEWAY_STATUSES = ("disconnected", "connecting", "connected", "error")


@dataclass
class AgentConnection:
    agent_id: str
    status: str = "disconnected"
    error: str | None = None
    last_ping: datetime | None = None


class AgentService:
    def __init__(self, transport: httpx.AsyncBaseTransport | None = None, timeout: float = 60.0):
        self._transport = transport
        self._timeout = timeout
        self._connections: dict[str, AgentConnection] = {}
        self._inflight: dict[str, asyncio.Task] = {}

    # ── Connection status ────────────────────────────────────────────────────

    def set_status(self, agent_id: str, status: str, error: str | None = None) -> None:
        existing = self._connections.get(agent_id)
        self._connections[agent_id] = AgentConnection(
            agent_id=agent_id,
            status=status,
            error=error,
            last_ping=existing.last_ping if existing else None,
        )

    def get_connection(self, agent_id: str) -> AgentConnection | None:
        return self._connections.get(agent_id)

    def get_all_connections(self) -> list[AgentConnection]:
        return list(self._connections.values())

    def connection_status(self, agent_id: str) -> ConnectionStatus | None:
        """Tracked status in Agent terms, or None if never tracked."""
        conn = self._connections.get(agent_id)
        if conn is None:
            return None
        if conn.status in ("connected", "error"):
            return conn.status
        return "disconnected"

    def _client(self, timeout: float | None = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=timeout or self._timeout)

    async def ping(self, agent: AgentConfig) -> bool:
        """True if the gateway endpoint answers with anything but 404."""
        if not _has_gateway(agent):
            return False
        try:
            async with self._client(timeout=3.0) as client:
                response = await client.options(_completions_url(agent))
        except httpx.HTTPError:
            return False
        conn = self._connections.setdefault(agent.id, AgentConnection(agent_id=agent.id))
        conn.last_ping = datetime.now().astimezone()
        return response.status_code != 404

    # ── Chat ─────────────────────────────────────────────────────────────────

    async def send_message(
        self,
        agent: AgentConfig,
        messages: list[dict],
        project: ProjectContext | None = None,
    ) -> AsyncIterator[str]:
        """Stream content deltas from the agent's gateway."""
        if not _has_gateway(agent):
            yield f"[Error: Agent {agent.name} does not have an OpenClaw gateway configured]"
            return

        previous = self._inflight.get(agent.id)
        current = asyncio.current_task()
        if previous is not None and previous is not current and not previous.done():
            previous.cancel()
        if current is not None:
            self._inflight[agent.id] = current

        self.set_status(agent.id, "connecting")
        system = [{"role": "system", "content": build_project_context_prompt(project)}] if project else []
        payload = {"model": "openclaw", "stream": True, "messages": system + list(messages)}

        try:
            async with self._client() as client:
                async with client.stream(
                    "POST",
                    _completions_url(agent),
                    json=payload,
                    headers={"x-openclaw-agent-id": "main"},
                ) as response:
                    if response.status_code != 200:
                        text = (await response.aread()).decode(errors="replace")[:500]
                        self.set_status(agent.id, "error", f"HTTP {response.status_code}: {text}")
                        yield f"[Error: {response.status_code} - {text or 'Failed to connect'}]"
                        return

                    self.set_status(agent.id, "connected")
                    async for line in response.aiter_lines():
                        if not line.startswith("data: "):
                            continue
                        data = line[6:].strip()
                        if data == "[DONE]":
                            return
                        try:
                            chunk = json.loads(data)
                            content = chunk["choices"][0]["delta"].get("content")
                        except (json.JSONDecodeError, KeyError, IndexError, TypeError, AttributeError):
                            continue
                        if content:
                            yield content
        except asyncio.CancelledError:
            # Not an error. A superseding request owns the status from here.
            if self._inflight.get(agent.id) in (current, None):
                self.set_status(agent.id, "disconnected")
            raise
        except httpx.HTTPError as e:
            logger.warning("Gateway request for %s failed: %s", agent.id, e)
            self.set_status(agent.id, "error", str(e))
            yield f"[Error: {e}]"
        finally:
            if current is not None and self._inflight.get(agent.id) is current:
                del self._inflight[agent.id]

    async def send_message_full(
        self,
        agent: AgentConfig,
        messages: list[dict],
        project: ProjectContext | None = None,
    ) -> str:
        parts = [chunk async for chunk in self.send_message(agent, messages, project)]
        return "".join(parts)

    def cancel(self, agent_id: str) -> None:
        task = self._inflight.pop(agent_id, None)
        if task is not None and not task.done():
            task.cancel()
        self.set_status(agent_id, "disconnected")


def build_project_context_prompt(project: ProjectContext) -> str:
    lines = [
        f'You are assisting with the project "{project.name}" located at {project.root}.',
        "",
        "Project capabilities:",
    ]
    if project.has_openspec:
        lines.append("- OpenSpec: yes (spec-driven development)")
    if project.has_beads:
        lines.append("- Beads: yes (task graph management)")
    if project.has_git:
        lines.append("- Git: yes (version control)")
    lines += [
        "",
        "Available commands:",
        "- /new <desc> - Create a new change",
        "- /plan [change] - Generate tasks from a change",
        "- /seed [change] - Import tasks to Beads",
        "- /assign <task> <agent> - Assign a task",
        "- /status - Show project status",
    ]
    return "\n".join(lines)


def _has_gateway(agent: AgentConfig) -> bool:
    return agent.connection.type == "openclaw" and bool(agent.connection.gateway)


def _completions_url(agent: AgentConfig) -> str:
    return f"{agent.connection.gateway.rstrip('/')}/v1/chat/completions"


_agent_service: AgentService | None = None


def get_agent_service() -> AgentService:
    global _agent_service
    if _agent_service is None:
        _agent_service = AgentService()
    return _agent_service
