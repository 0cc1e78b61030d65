"""
Housekeeping Cog - Background Tasks & Admin Commands

Runs the hourly expired-session sweep and the settlement check that closes
out each cycle once its 18:00 boundary has passed.
"""

import discord
from discord import app_commands
from discord.ext import commands, tasks
from typing import Optional
from datetime import datetime, timezone

from subgames.config import Config
from subgames.utils.cycle import get_completed_cycle_id
from subgames.utils.logger import setup_logger

logger = setup_logger(__name__)


class HousekeepingCog(commands.Cog):
    """Background maintenance and settlement tasks"""

    def __init__(self, bot):
        self.bot = bot
        self.session_service = bot.session_service
        self.settlement_service = bot.settlement_service
        self.logger = logger
        # Last closed cycle the settlement task has handled
        self._last_checked_cycle: Optional[str] = None

    async def cog_load(self):
        self.cleanup_expired_sessions.start()
        self.settle_completed_cycle.start()
        self.logger.info("HousekeepingCog: Background tasks started")

    async def cog_unload(self):
        """Stop background tasks when cog is unloaded"""
        self.cleanup_expired_sessions.cancel()
        self.settle_completed_cycle.cancel()
        self.logger.info("HousekeepingCog: Background tasks stopped")

    @tasks.loop(hours=1)
    async def cleanup_expired_sessions(self):
        """Delete unused sessions past their expiry and drop stale rate-limit windows"""
        try:
            await self.session_service.cleanup_expired_sessions()
            purged = await self.bot.rate_limiter.purge_expired()
            if purged:
                self.logger.debug(f"Purged {purged} expired rate-limit windows")
        except Exception as e:
            self.logger.error(f"Error in session cleanup task: {e}", exc_info=True)

    @tasks.loop(hours=1)
    async def settle_completed_cycle(self):
        """Settle the most recently closed cycle once per boundary"""
        cycle_id = get_completed_cycle_id(self.settlement_service.now())
        if cycle_id == self._last_checked_cycle:
            return

        try:
            await self.settlement_service.settle_cycle(cycle_id)
            self._last_checked_cycle = cycle_id
        except Exception as e:
            # Retried on the next tick
            self.logger.error(f"Error settling cycle {cycle_id}: {e}", exc_info=True)

    @cleanup_expired_sessions.before_loop
    @settle_completed_cycle.before_loop
    async def before_background_task(self):
        """Wait for bot to be ready before starting background tasks"""
        await self.bot.wait_until_ready()

    @app_commands.command(
        name="admin-cleanup-sessions",
        description="Delete expired unused game sessions (Owner only)"
    )
    async def admin_cleanup_sessions(self, interaction: discord.Interaction):
        """Slash command to clean up expired game sessions"""
        if interaction.user.id != Config.OWNER_DISCORD_ID:
            await interaction.response.send_message(
                "❌ **Access Denied**\nThis command is restricted to the bot owner.",
                ephemeral=True
            )
            return

        await interaction.response.defer(ephemeral=True)
        self.logger.info(f"Admin {interaction.user.id} triggered session cleanup")
        count = await self.session_service.cleanup_expired_sessions()

        embed = discord.Embed(
            title="✅ Cleanup Complete",
            description=f"Removed **{count}** expired game sessions.",
            color=discord.Color.green(),
            timestamp=datetime.now(timezone.utc)
        )
        await interaction.followup.send(embed=embed, ephemeral=True)


async def setup(bot):
    await bot.add_cog(HousekeepingCog(bot))
