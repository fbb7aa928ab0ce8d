import discord


class ConfirmView(discord.ui.View):
    """Two-button confirm/cancel prompt that only the invoking user can answer."""

    def __init__(self, author_id: int, on_confirm, confirm_label: str = "Confirm", timeout: float = 60):
        super().__init__(timeout=timeout)
        self.author_id, self.on_confirm = author_id, on_confirm
        self.confirm.label = confirm_label

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if interaction.user.id != self.author_id:
            await interaction.response.send_message("This prompt isn't yours.", ephemeral=True)
            return False
        return True

    @discord.ui.button(label="Confirm", style=discord.ButtonStyle.danger)
    async def confirm(self, interaction: discord.Interaction, _button: discord.ui.Button):
        self.stop()
        await self.on_confirm(interaction)

    @discord.ui.button(label="Cancel", style=discord.ButtonStyle.secondary)
    async def cancel(self, interaction: discord.Interaction, _button: discord.ui.Button):
        self.stop()
        await interaction.response.edit_message(content="Cancelled.", view=None)
