from __future__ import annotations

import discord


class DrawControlView(discord.ui.View):
    def __init__(self, bot, reward_id: str) -> None:
        super().__init__(timeout=None)
        self.bot = bot
        self.reward_id = reward_id

        cancel_button = discord.ui.Button(
            label="Cancel draw",
            style=discord.ButtonStyle.danger,
            custom_id=f"lottery:cancel:{reward_id}",
        )
        cancel_button.callback = self.cancel_callback  # type: ignore[assignment]
        self.add_item(cancel_button)

        winners_button = discord.ui.Button(
            label="Winners",
            style=discord.ButtonStyle.primary,
            custom_id=f"lottery:winners:{reward_id}",
        )
        winners_button.callback = self.winners_callback  # type: ignore[assignment]
        self.add_item(winners_button)

    async def cancel_callback(self, interaction: discord.Interaction) -> None:
        if not interaction.guild or not isinstance(interaction.user, discord.Member):
            await interaction.response.send_message(
                "Draws can only be cancelled from a guild.", ephemeral=True
            )
            return
        if not self.bot.is_admin(interaction.user, guild_owner_id=interaction.guild.owner_id):
            await interaction.response.send_message(
                "Only lottery administrators can cancel a draw.", ephemeral=True
            )
            return
        if self.bot.engine.cancel(self.reward_id):
            await interaction.response.send_message("Draw cancelled.", ephemeral=True)
        else:
            await interaction.response.send_message(
                "That draw is no longer running.", ephemeral=True
            )

    async def winners_callback(self, interaction: discord.Interaction) -> None:
        reward = self.bot.engine.book.get(self.reward_id)
        if not reward:
            await interaction.response.send_message("Reward not found.", ephemeral=True)
            return
        if not reward.winners:
            await interaction.response.send_message("No winners yet.", ephemeral=True)
            return
        description = "\n".join(
            f"{position}. {winner.name}"
            for position, winner in enumerate(reward.winners, start=1)
        )
        await interaction.response.send_message(
            f"Winners for **{reward.name}**:\n{description}", ephemeral=True
        )
