from __future__ import annotations

import discord
from discord import app_commands

from .models import Reply, Role
from .router import Actor

# Buttons keep working after this through on_interaction; the view only stops
# being tracked in memory.
VIEW_TIMEOUT_SECONDS = 900

COMMAND_DESCRIPTIONS = {
    "start": "Register and open the main menu",
    "myday": "Show today's record",
    "myweek": "Show this week's records",
    "team": "Show today's team status (managers)",
    "help": "List available commands",
    "editreport": "Rewrite today's daily report",
    "cancel": "Stop the current dialog",
    "history": "Show your last 10 work days",
    "absence": "Request an absence",
    "absences": "Show your absence requests",
}


def actor_from(user: discord.abc.User) -> Actor:
    return Actor(discord_id=str(user.id), name=user.display_name, username=user.name)


def build_view(reply: Reply) -> discord.ui.View | None:
    if not reply.buttons:
        return None

    view = discord.ui.View(timeout=VIEW_TIMEOUT_SECONDS)
    for row_index, row in enumerate(reply.buttons):
        for button in row:
            view.add_item(
                discord.ui.Button(
                    label=button.label,
                    custom_id=button.custom_id,
                    style=discord.ButtonStyle.secondary,
                    row=row_index,
                )
            )
    return view


async def send_reply(interaction: discord.Interaction, reply: Reply) -> None:
    # Keep replies private inside the server; DMs are private already.
    kwargs = {"ephemeral": interaction.guild is not None}
    view = build_view(reply)
    if view is not None:
        kwargs["view"] = view

    if interaction.response.is_done():
        await interaction.followup.send(reply.text, **kwargs)
    else:
        await interaction.response.send_message(reply.text, **kwargs)


def _make_command(bot, name: str):
    async def command(interaction: discord.Interaction) -> None:
        reply = await bot.engine.handle_command(actor_from(interaction.user), name)
        await send_reply(interaction, reply)

    return command


def register_commands(bot) -> None:
    """Register all slash commands on the bot. Called once during setup."""
    guild_scope = discord.Object(id=bot.config.guild_id)

    for name, description in COMMAND_DESCRIPTIONS.items():
        bot.tree.add_command(
            app_commands.Command(name=name, description=description, callback=_make_command(bot, name)),
            guild=guild_scope,
        )

    @bot.tree.command(name="promote", description="Change a user's role (admins)", guild=guild_scope)
    @app_commands.describe(member="Who to change", role="The new role")
    @app_commands.choices(role=[app_commands.Choice(name=role.value, value=role.value) for role in Role])
    async def promote(interaction: discord.Interaction, member: discord.Member, role: app_commands.Choice[str]) -> None:
        reply = await bot.engine.handle_command(actor_from(interaction.user), "promote", f"{member.id} {role.value}")
        await send_reply(interaction, reply)
