"""Render draw events into a live-updating Discord message."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Sequence, Set

import discord

from .events import (
    DrawCancelled,
    DrawEvent,
    DrawFinished,
    HighlightChanged,
    PersistenceFailed,
    WinnerCommitted,
)
from .models import Candidate, Reward, RewardBook

if TYPE_CHECKING:
    from .engine import DrawEngine

log = logging.getLogger(__name__)

# Discord rate limits message edits far below the 0.1s highlight cadence.
MIN_EDIT_INTERVAL = 0.75


def format_winners(winners: Sequence[Candidate]) -> str:
    if not winners:
        return "-"
    return "\n".join(
        f"{position}. {winner.name}" for position, winner in enumerate(winners, start=1)
    )


def format_reward_overview(
    book: RewardBook, is_drawing: Callable[[str], bool]
) -> str:
    """List every reward grouped under its category heading."""
    lines: List[str] = []
    for category in book.categories():
        lines.append(f"__{category or 'Uncategorized'}__")
        for reward in book.list_all():
            if reward.category != category:
                continue
            drawing = " (drawing)" if is_drawing(reward.id) else ""
            winners = ", ".join(w.name for w in reward.winners) or "-"
            lines.append(
                f"**{reward.name}**{drawing} `{reward.id}` - pool {len(reward.pool)}, "
                f"winners {len(reward.winners)}/{reward.quota}: {winners}"
            )
    return "\n".join(lines)


def build_draw_embed(
    reward: Reward,
    *,
    status: str,
    highlighted: Optional[str] = None,
    warning: Optional[str] = None,
) -> discord.Embed:
    colors = {
        "Drawing": discord.Color.blue(),
        "Finished": discord.Color.green(),
        "Cancelled": discord.Color.dark_gray(),
    }
    embed = discord.Embed(
        title=reward.name,
        description=reward.category or "Uncategorized",
        color=colors.get(status, discord.Color.blurple()),
    )
    embed.add_field(
        name="Winners", value=f"{len(reward.winners)}/{reward.quota}", inline=True
    )
    embed.add_field(name="Remaining", value=str(len(reward.pool)), inline=True)
    embed.add_field(name="Status", value=status, inline=True)
    if highlighted:
        embed.add_field(name="Spinning", value=f"**{highlighted}**", inline=False)
    embed.add_field(name="Winner(s)", value=format_winners(reward.winners), inline=False)
    if warning:
        embed.add_field(name="Warning", value=warning, inline=False)
    embed.set_footer(text=f"Reward ID: {reward.id}")
    return embed


@dataclass(slots=True)
class _Display:
    message: discord.Message
    highlighted: Optional[str] = None
    warning: Optional[str] = None
    last_edit: float = 0.0


class DrawPresenter:
    """Subscribes to a :class:`DrawEngine` and mirrors draws into messages."""

    def __init__(self, engine: "DrawEngine") -> None:
        self.engine = engine
        self._displays: Dict[str, _Display] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._unsubscribe = engine.subscribe(self.handle)

    def close(self) -> None:
        self._unsubscribe()
        self._displays.clear()

    def attach(self, reward_id: str, message: discord.Message) -> None:
        self._displays[reward_id] = _Display(message=message)

    def detach(self, reward_id: str) -> None:
        self._displays.pop(reward_id, None)

    def handle(self, event: DrawEvent) -> None:
        display = self._displays.get(event.reward_id)
        if display is None:
            return
        reward = self.engine.book.get(event.reward_id)
        if reward is None:
            return

        status = "Drawing"
        force = True
        if isinstance(event, HighlightChanged):
            display.highlighted = event.candidate_name
            force = False
        elif isinstance(event, WinnerCommitted):
            display.highlighted = None
        elif isinstance(event, PersistenceFailed):
            display.warning = "Result could not be saved; it is kept in memory."
        elif isinstance(event, DrawFinished):
            status = "Finished"
            display.highlighted = None
        elif isinstance(event, DrawCancelled):
            status = "Cancelled"
            display.highlighted = None

        loop = asyncio.get_running_loop()
        now = loop.time()
        if not force and now - display.last_edit < MIN_EDIT_INTERVAL:
            return
        display.last_edit = now
        embed = build_draw_embed(
            reward,
            status=status,
            highlighted=display.highlighted,
            warning=display.warning,
        )
        terminal = isinstance(event, (DrawFinished, DrawCancelled))
        if terminal:
            self._displays.pop(event.reward_id, None)
        task = loop.create_task(self._edit(display.message, embed, terminal))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _edit(
        self, message: discord.Message, embed: discord.Embed, terminal: bool
    ) -> None:
        try:
            if terminal:
                await message.edit(embed=embed, view=None)
            else:
                await message.edit(embed=embed)
        except discord.HTTPException as exc:
            log.warning("Failed to update draw message %s: %s", message.id, exc)


def describe_for_log(event: DrawEvent, reward: Optional[Reward]) -> Optional[str]:
    """Text posted to the logger channel, or None for events it ignores."""
    name = reward.name if reward else event.reward_id
    if isinstance(event, DrawFinished):
        winners = ", ".join(winner.name for winner in event.winners) or "-"
        return f"Draw for **{name}** finished. Winners: {winners}"
    if isinstance(event, DrawCancelled):
        return f"Draw for **{name}** was cancelled."
    if isinstance(event, PersistenceFailed):
        return f"Result of **{name}** could not be saved: {event.error.cause}"
    return None


class DrawLogNotifier:
    """Posts draw outcomes to the configured logger channel."""

    def __init__(self, engine: "DrawEngine", client: discord.Client, channel_id: int) -> None:
        self.engine = engine
        self.client = client
        self.channel_id = channel_id
        self._tasks: Set[asyncio.Task] = set()
        self._unsubscribe = engine.subscribe(self.handle)

    def close(self) -> None:
        self._unsubscribe()

    def handle(self, event: DrawEvent) -> None:
        message = describe_for_log(event, self.engine.book.get(event.reward_id))
        if message is None:
            return
        task = asyncio.get_running_loop().create_task(self.notify(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def notify(self, message: str) -> None:
        channel = await self._fetch_text_channel()
        if channel is None:
            return
        try:
            await channel.send(f"[Lottery] {message}")
        except discord.HTTPException as exc:
            log.warning("Failed to send log message to %s: %s", self.channel_id, exc)

    async def _fetch_text_channel(self) -> Optional[discord.TextChannel]:
        channel = self.client.get_channel(self.channel_id)
        if isinstance(channel, discord.TextChannel):
            return channel
        try:
            fetched = await self.client.fetch_channel(self.channel_id)
        except (discord.NotFound, discord.Forbidden, discord.HTTPException):
            return None
        return fetched if isinstance(fetched, discord.TextChannel) else None
