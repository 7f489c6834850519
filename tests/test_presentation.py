import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from conftest import make_book, make_reward
from lottery_machine.bot import has_admin_rights
from lottery_machine.errors import PersistenceError
from lottery_machine.events import DrawCancelled, DrawFinished, HighlightChanged, PersistenceFailed
from lottery_machine.presenter import (
    DrawLogNotifier,
    build_draw_embed,
    describe_for_log,
    format_reward_overview,
    format_winners,
)


def member(member_id=1, *, roles=(), administrator=False, manage_guild=False):
    return SimpleNamespace(
        id=member_id,
        roles=[SimpleNamespace(id=role_id) for role_id in roles],
        guild_permissions=SimpleNamespace(
            administrator=administrator, manage_guild=manage_guild
        ),
    )


def test_format_winners():
    reward = make_reward("Bonus", ["Anna", "Ben"], quota=2)
    assert format_winners([]) == "-"
    assert format_winners(reward.pool) == "1. Anna\n2. Ben"


def test_build_draw_embed_fields():
    reward = make_reward("Bonus", ["Anna", "Ben", "Cleo"], quota=2, category="Staff")
    reward.record_winner(reward.pool[1])

    embed = build_draw_embed(
        reward, status="Drawing", highlighted="Cleo", warning="not saved"
    )

    fields = {field.name: field.value for field in embed.fields}
    assert embed.title == "Bonus"
    assert embed.description == "Staff"
    assert fields["Winners"] == "1/2"
    assert fields["Remaining"] == "2"
    assert fields["Spinning"] == "**Cleo**"
    assert fields["Winner(s)"] == "1. Ben"
    assert fields["Warning"] == "not saved"
    assert reward.id in embed.footer.text


def test_build_draw_embed_without_highlight():
    embed = build_draw_embed(make_reward("Bonus", ["Anna"]), status="Finished")
    names = [field.name for field in embed.fields]
    assert "Spinning" not in names
    assert "Warning" not in names


def test_admin_rights():
    assert has_admin_rights(member(administrator=True), [])
    assert has_admin_rights(member(manage_guild=True), [])
    assert has_admin_rights(member(roles=[10, 20]), [20])
    assert has_admin_rights(member(7), [], guild_owner_id=7)
    assert not has_admin_rights(member(roles=[10]), [20])
    assert not has_admin_rights(member(roles=[10]), [])


def test_reward_overview_groups_by_category():
    bonus = make_reward("Bonus", ["Anna", "Ben"], quota=2, category="Staff")
    bonus.record_winner(bonus.pool[0])
    mug = make_reward("Mug", ["Cleo"])
    book = make_book(bonus, mug)

    overview = format_reward_overview(book, lambda reward_id: reward_id == mug.id)

    lines = overview.splitlines()
    assert lines[0] == "__Uncategorized__"
    assert lines[1].startswith("**Mug** (drawing)")
    assert lines[2] == "__Staff__"
    assert lines[3].startswith("**Bonus**")
    assert lines[3].endswith("pool 1, winners 1/2: Anna")


def test_describe_for_log():
    reward = make_reward("Bonus", ["Anna", "Ben"])
    winner = reward.pool[0]
    error = PersistenceError(reward.id, OSError("disk full"))

    assert describe_for_log(HighlightChanged(reward.id, winner.id, "Anna"), reward) is None
    assert describe_for_log(DrawFinished(reward.id, (winner,)), reward) == (
        "Draw for **Bonus** finished. Winners: Anna"
    )
    assert describe_for_log(DrawCancelled(reward.id), None) == (
        f"Draw for **{reward.id}** was cancelled."
    )
    assert "disk full" in describe_for_log(PersistenceFailed(reward.id, error), reward)


@pytest.mark.asyncio
async def test_log_notifier_posts_finished_draw(engine_factory, scheduler):
    reward = make_reward("Bonus", ["Anna"])
    engine = engine_factory(reward)
    channel = MagicMock(spec=discord.TextChannel)
    channel.send = AsyncMock()
    client = SimpleNamespace(get_channel=lambda channel_id: channel, fetch_channel=AsyncMock())
    notifier = DrawLogNotifier(engine, client, 42)

    engine.start(reward)
    await scheduler.run_until_idle()
    await asyncio.gather(*list(notifier._tasks))

    channel.send.assert_awaited_once_with(
        "[Lottery] Draw for **Bonus** finished. Winners: Anna"
    )
    client.fetch_channel.assert_not_awaited()
    notifier.close()


@pytest.mark.asyncio
async def test_log_notifier_skips_unknown_channel(engine_factory):
    engine = engine_factory()
    client = SimpleNamespace(
        get_channel=lambda channel_id: None,
        fetch_channel=AsyncMock(return_value=object()),
    )
    notifier = DrawLogNotifier(engine, client, 42)

    await notifier.notify("hello")

    client.fetch_channel.assert_awaited_once_with(42)
