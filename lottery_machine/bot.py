from __future__ import annotations

import argparse
import asyncio
import logging
import os
from pathlib import Path
from typing import Iterable, Optional

import discord
from discord import app_commands
from discord.ext import commands

from .config import Config, ConfigError, load_config
from .engine import DrawEngine, StartOutcome
from .errors import AlreadyDrawingError, StoreError
from .models import Reward
from .presenter import (
    DrawLogNotifier,
    DrawPresenter,
    build_draw_embed,
    format_reward_overview,
    format_winners,
)
from .scheduler import AsyncioScheduler
from .storage import StateStorage
from .views import DrawControlView


PERMISSION_LOG = logging.getLogger("lottery.permissions")
ENV_PATH = Path(".env")

log = logging.getLogger(__name__)


def _load_env_file(path: Path = ENV_PATH) -> None:
    if not path.exists():
        return
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return
    for line in raw.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        key = key.strip()
        if not key:
            continue
        value = value.strip()
        if value and ((value[0] == value[-1]) and value.startswith(("'", '"'))):
            value = value[1:-1]
        os.environ.setdefault(key, value)


def configure_logging(level: str) -> None:
    console_level = getattr(logging, level.upper(), logging.INFO)
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    root_logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    log_dir = Path("logs")
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_dir / "log.txt", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)


def has_admin_rights(
    member: discord.Member,
    admin_roles: Iterable[int],
    *,
    guild_owner_id: Optional[int] = None,
) -> bool:
    if guild_owner_id is not None and guild_owner_id == member.id:
        return True
    permissions = getattr(member, "guild_permissions", None)
    if permissions and (permissions.administrator or permissions.manage_guild):
        return True
    required = {int(role_id) for role_id in admin_roles}
    if not required:
        return False
    return any(role.id in required for role in getattr(member, "roles", []))


class LotteryBot(commands.Bot):
    def __init__(self, config: Config, storage: StateStorage) -> None:
        intents = discord.Intents.default()

        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            application_id=config.application_id,
        )
        self.config = config
        self.storage = storage
        self.scheduler = AsyncioScheduler()
        self.engine: Optional[DrawEngine] = None
        self.presenter: Optional[DrawPresenter] = None
        self.log_notifier: Optional[DrawLogNotifier] = None

    async def setup_hook(self) -> None:
        seeds = [seed.to_reward() for seed in self.config.rewards]
        try:
            book = await self.storage.load_or_seed(seeds)
        except StoreError as exc:
            log.exception("Failed to load persisted rewards: %s", exc)
            raise
        self.engine = DrawEngine(
            book,
            self.storage,
            self.scheduler,
            settings=self.config.draw,
        )
        self.presenter = DrawPresenter(self.engine)
        logger_channel_id = self.config.logging.logger_channel_id
        if logger_channel_id:
            self.log_notifier = DrawLogNotifier(self.engine, self, logger_channel_id)
        log.info("Loaded %d reward(s).", len(book))
        await self.tree.sync()
        dev_guild_id = self.config.permissions.development_guild_id
        if dev_guild_id:
            guild = discord.Object(dev_guild_id)
            await self.tree.sync(guild=guild)

    async def on_ready(self) -> None:
        log.info("Logged in as %s (%s)", self.user, self.user.id)  # type: ignore[union-attr]

    async def close(self) -> None:
        if self.engine is not None:
            cancelled = self.engine.cancel_all()
            if cancelled:
                log.info("Cancelled %d running draw(s) on shutdown.", len(cancelled))
        self.scheduler.cancel_all()
        # Commits already running finish their save before the loop goes away.
        await self.scheduler.drain()
        if self.presenter is not None:
            self.presenter.close()
        if self.log_notifier is not None:
            self.log_notifier.close()
        await super().close()

    def is_admin(self, member: discord.Member, *, guild_owner_id: Optional[int] = None) -> bool:
        return has_admin_rights(
            member, self.config.permissions.admin_roles, guild_owner_id=guild_owner_id
        )

    def find_reward(self, value: str) -> Optional[Reward]:
        if self.engine is None:
            return None
        value = value.strip()
        return self.engine.book.get(value) or self.engine.book.find_by_name(value)


def admin_required(interaction: discord.Interaction, bot: LotteryBot) -> Optional[str]:
    command_name = getattr(getattr(interaction, "command", None), "name", "unknown")
    guild = interaction.guild
    user = interaction.user
    if guild is None or not isinstance(user, discord.Member):
        PERMISSION_LOG.debug(
            "Denied command %s for user %s: non-guild context.",
            command_name,
            getattr(user, "id", "unknown"),
        )
        return "This command can only be used inside a guild."
    if not bot.is_admin(user, guild_owner_id=guild.owner_id):
        PERMISSION_LOG.warning(
            "Denied command %s for user %s: missing lottery admin rights.",
            command_name,
            user.id,
        )
        return "You do not have permission to run lottery draws."
    PERMISSION_LOG.debug("Authorized command %s for user %s.", command_name, user.id)
    return None


def build_bot(config_path: Path) -> LotteryBot:
    _load_env_file()
    config = load_config(config_path)
    configure_logging(config.logging.level)
    storage = StateStorage(config.storage.path)
    return LotteryBot(config, storage)


def register_commands(bot: LotteryBot) -> None:
    @bot.tree.command(name="lottery-rewards", description="List rewards and their pools.")
    async def lottery_rewards(interaction: discord.Interaction) -> None:
        if bot.engine is None or not len(bot.engine.book):
            await interaction.response.send_message("No rewards configured.", ephemeral=True)
            return
        overview = format_reward_overview(bot.engine.book, bot.engine.is_drawing)
        await interaction.response.send_message(overview, ephemeral=True)

    @bot.tree.command(name="lottery-draw", description="Draw winners for a reward.")
    @app_commands.describe(
        reward="Reward ID or exact name.",
        duration="Spinning duration in seconds (0.5 - 10).",
    )
    async def lottery_draw(
        interaction: discord.Interaction,
        reward: str,
        duration: Optional[app_commands.Range[float, 0.5, 10.0]] = None,
    ) -> None:
        error = admin_required(interaction, bot)
        if error:
            await interaction.response.send_message(error, ephemeral=True)
            return
        target = bot.find_reward(reward)
        if target is None or bot.engine is None or bot.presenter is None:
            await interaction.response.send_message("Reward not found.", ephemeral=True)
            return
        if not target.pool:
            await interaction.response.send_message(
                f"**{target.name}** has no candidates left to draw.", ephemeral=True
            )
            return
        if bot.engine.is_drawing(target.id):
            await interaction.response.send_message(
                f"**{target.name}** is already being drawn.", ephemeral=True
            )
            return

        await interaction.response.send_message(
            embed=build_draw_embed(target, status="Drawing"),
            view=DrawControlView(bot, target.id),
        )
        message = await interaction.original_response()
        bot.presenter.attach(target.id, message)
        outcome = bot.engine.start(target, highlight_duration=duration)
        if outcome is not StartOutcome.STARTED:
            bot.presenter.detach(target.id)
            await interaction.followup.send(
                f"Draw for **{target.name}** was not started ({outcome.value}).",
                ephemeral=True,
            )

    @bot.tree.command(name="lottery-cancel", description="Cancel a running draw.")
    @app_commands.describe(reward="Reward ID or exact name.")
    async def lottery_cancel(interaction: discord.Interaction, reward: str) -> None:
        error = admin_required(interaction, bot)
        if error:
            await interaction.response.send_message(error, ephemeral=True)
            return
        target = bot.find_reward(reward)
        if target is None or bot.engine is None:
            await interaction.response.send_message("Reward not found.", ephemeral=True)
            return
        if bot.engine.cancel(target.id):
            await interaction.response.send_message(
                f"Draw for **{target.name}** cancelled.", ephemeral=True
            )
        else:
            await interaction.response.send_message(
                f"No draw is running for **{target.name}**.", ephemeral=True
            )

    @bot.tree.command(
        name="lottery-reset", description="Return a reward's winners to its pool."
    )
    @app_commands.describe(reward="Reward ID or exact name.")
    async def lottery_reset(interaction: discord.Interaction, reward: str) -> None:
        error = admin_required(interaction, bot)
        if error:
            await interaction.response.send_message(error, ephemeral=True)
            return
        target = bot.find_reward(reward)
        if target is None or bot.engine is None:
            await interaction.response.send_message("Reward not found.", ephemeral=True)
            return

        await interaction.response.defer(ephemeral=True)
        try:
            updated = await bot.engine.reset_winners(target.id)
        except AlreadyDrawingError as exc:
            await interaction.followup.send(str(exc), ephemeral=True)
            return
        except StoreError as exc:
            log.warning("Failed to persist winner reset for %s: %s", target.id, exc)
            await interaction.followup.send(
                "Winners were reset but could not be saved.", ephemeral=True
            )
            return
        if updated is None:
            await interaction.followup.send("Reward not found.", ephemeral=True)
            return
        await interaction.followup.send(
            f"Winners of **{updated.name}** reset. Pool:\n{format_winners(updated.pool)}",
            ephemeral=True,
        )


async def main() -> None:
    parser = argparse.ArgumentParser(description="Discord Lottery Machine")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config") / "config.yaml",
        help="Path to the bot configuration file.",
    )
    args = parser.parse_args()

    try:
        bot = build_bot(args.config)
    except ConfigError as exc:
        raise SystemExit(f"Configuration error: {exc}") from exc

    register_commands(bot)

    async with bot:
        await bot.start(bot.config.token)


if __name__ == "__main__":
    asyncio.run(main())
