from __future__ import annotations

import logging

import discord
from discord.ext import commands, tasks
from dotenv import load_dotenv

from .commands import actor_from, build_view, register_commands, send_reply
from .config import Config, load_config
from .db import Database
from .events import EventBus
from .models import Reply
from .notifications import NotificationDispatcher
from .reminders import ReminderService
from .router import BotEngine
from .sessions import Idle
from .tracker import utc_now


class DiscordMessenger:
    """Outbound delivery through the bot's own Discord connection."""

    def __init__(self, bot: TimeBot) -> None:
        self.bot = bot

    async def send_to_user(self, discord_id: str, reply: Reply) -> None:
        user = self.bot.get_user(int(discord_id))
        if user is None:
            user = await self.bot.fetch_user(int(discord_id))
        await user.send(reply.text, view=build_view(reply))

    async def send_to_channel(self, reply: Reply) -> None:
        if self.bot.report_channel is None:
            self.bot.logger.debug("No report channel configured; dropping channel message")
            return
        # Never ping users in automated summaries.
        await self.bot.report_channel.send(reply.text, allowed_mentions=discord.AllowedMentions.none())


class TimeBot(commands.Bot):
    def __init__(self, config: Config, db: Database) -> None:
        intents = discord.Intents.none()
        intents.guilds = True
        intents.guild_messages = True
        intents.dm_messages = True
        intents.message_content = True

        super().__init__(command_prefix="!", intents=intents)

        self.config = config
        self.db = db
        self.bus = EventBus()
        self.engine = BotEngine.create(db, config.timezone, self.bus)
        self.dispatcher = NotificationDispatcher(db, DiscordMessenger(self))
        self.dispatcher.register(self.bus)
        self.reminders = ReminderService(
            db,
            self.engine.tracker,
            self.bus,
            morning_at=config.morning_reminder_time,
            evening_at=config.evening_reminder_time,
        )

        self.logger = logging.getLogger("timebot")

        # Nothing is handled until the guild and report channel are confirmed.
        self.runtime_ready = False
        self.report_channel: discord.TextChannel | None = None

    async def setup_hook(self) -> None:
        # Register slash commands during startup and begin the reminder loop.
        register_commands(self)
        await self.tree.sync(guild=discord.Object(id=self.config.guild_id))
        if self.config.reminders_enabled:
            self.reminder_loop.start()

    async def on_ready(self) -> None:
        self.logger.info("Connected as %s (%s)", self.user, self.user.id if self.user else "unknown")
        if self.runtime_ready:
            return

        if await self._validate_runtime_resources():
            self.runtime_ready = True
            self.logger.info("Runtime checks passed")

    async def _validate_runtime_resources(self) -> bool:
        # Fail fast if the guild or the optional report channel is misconfigured.
        guild = self.get_guild(self.config.guild_id)
        if guild is None:
            self.logger.error("Configured guild %s not found", self.config.guild_id)
            await self.close()
            return False

        if self.config.report_channel_id is not None:
            report = guild.get_channel(self.config.report_channel_id)
            if not isinstance(report, discord.TextChannel):
                self.logger.error("Report channel %s is missing or not a text channel", self.config.report_channel_id)
                await self.close()
                return False

            perms = report.permissions_for(guild.me)
            if not perms.view_channel or not perms.send_messages:
                self.logger.error("Missing view/send permission in report channel %s", report.id)
                await self.close()
                return False
            self.report_channel = report

        return True

    async def on_interaction(self, interaction: discord.Interaction) -> None:
        # Slash commands are handled by the command tree; this only covers buttons.
        if not self.runtime_ready or interaction.type is not discord.InteractionType.component:
            return

        custom_id = (interaction.data or {}).get("custom_id")
        if not custom_id:
            return

        reply = await self.engine.handle_callback(actor_from(interaction.user), custom_id)
        await send_reply(interaction, reply)

    async def on_message(self, message: discord.Message) -> None:
        if not self.runtime_ready or message.author.bot:
            return

        actor = actor_from(message.author)
        if message.guild is not None:
            # In the server only answers to an open dialog are picked up.
            if message.guild.id != self.config.guild_id:
                return
            if isinstance(self.engine.sessions.get(actor.discord_id), Idle):
                return

        reply = await self.engine.handle_text(actor, message.content)
        await message.reply(reply.text, view=build_view(reply), mention_author=False)

    @tasks.loop(seconds=30)
    async def reminder_loop(self) -> None:
        if not self.runtime_ready:
            return

        try:
            self.reminders.run_due(utc_now())
        except Exception:  # keep the loop alive
            self.logger.exception("Reminder run failed")

    @reminder_loop.before_loop
    async def before_reminder_loop(self) -> None:
        await self.wait_until_ready()

    async def close(self) -> None:
        if self.reminder_loop.is_running():
            self.reminder_loop.cancel()
        await self.bus.drain()
        self.db.close()
        await super().close()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def main() -> None:
    load_dotenv()
    config = load_config()
    configure_logging(config.log_level)

    db = Database(config.database_path)
    db.initialize()

    bot = TimeBot(config=config, db=db)
    bot.run(config.discord_token)


if __name__ == "__main__":
    main()
