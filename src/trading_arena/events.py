"""Best-effort notifications about portfolio, trade and reflection activity."""

from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from pydantic import BaseModel, Field
from rich.console import Console

console = Console()


class EventType(str, Enum):
    PORTFOLIO_UPDATED = "portfolio_updated"
    TRADE_EXECUTED = "trade_executed"
    THINKING = "thinking"
    REFLECTION_CREATED = "reflection_created"
    ERROR = "error"


class Event(BaseModel):
    type: EventType
    agent_id: int | None = None
    payload: Any = None
    timestamp: datetime = Field(default_factory=datetime.now)


class Notifier(Protocol):
    async def publish(self, event: Event) -> None: ...


class NullNotifier:
    async def publish(self, event: Event) -> None:
        pass


class ConsoleNotifier:
    """Prints thinking and error events; other events are summarized in one line."""

    async def publish(self, event: Event) -> None:
        prefix = f"[agent {event.agent_id}] " if event.agent_id is not None else ""
        if event.type == EventType.ERROR:
            console.print(f"  [red]{prefix}{event.payload}[/red]")
        elif event.type == EventType.THINKING:
            console.print(f"  [dim]{prefix}{event.payload}[/dim]")
        else:
            console.print(f"  [cyan]{prefix}{event.type.value}[/cyan]")


async def notify(notifier: Notifier, event: Event) -> None:
    """Deliver an event, never letting a delivery failure reach the caller."""
    try:
        await notifier.publish(event)
    except Exception as e:
        console.print(f"  [dim]Could not deliver {event.type.value} event: {e}[/dim]")
