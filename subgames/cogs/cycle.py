"""
Cycle Cog - leaderboards, winners, pity points and referrals.

Also hosts the owner-only replay commands for settlement and pity issuance,
and the listener that issues pity points whenever a winner is announced.
"""

import discord
from discord import app_commands
from discord.ext import commands
from typing import Optional
from datetime import datetime, timezone

from subgames.config import Config
from subgames.constants import RateLimitConstants, UIConstants
from subgames.data_models.results import CycleWinnerAnnounced
from subgames.services.rate_limiter import rate_limit
from subgames.utils.error_embeds import ErrorEmbeds
from subgames.utils.exceptions import SubGamesError
from subgames.utils.logger import setup_logger

logger = setup_logger(__name__)

RANK_MEDALS = {1: "🥇", 2: "🥈", 3: "🥉"}


class CycleCog(commands.Cog):
    """Cycle standings, settlement and pity points"""

    def __init__(self, bot):
        self.bot = bot
        self.leaderboard_service = bot.leaderboard_service
        self.settlement_service = bot.settlement_service
        self.pity_service = bot.pity_service
        self.referral_service = bot.referral_service

    async def _deny_non_owner(self, interaction: discord.Interaction) -> bool:
        if interaction.user.id == Config.OWNER_DISCORD_ID:
            return False
        await interaction.response.send_message(
            "❌ **Access Denied**\nThis command is restricted to the bot owner.",
            ephemeral=True
        )
        return True

    @commands.Cog.listener()
    async def on_cycle_winner_announced(self, event: CycleWinnerAnnounced):
        """Issue pity points for the cycle that was just settled"""
        try:
            result = await self.pity_service.handle_winner_announced(event)
            logger.info(f"Pity issuance for cycle {result.cycle_id}: {result.eligible_count} eligible")
        except Exception as e:
            logger.error(f"Pity issuance failed for cycle {event.cycle_id}: {e}", exc_info=True)

    @app_commands.command(name="leaderboard", description="View the creator leaderboard for a cycle")
    @app_commands.describe(cycle_id="Cycle key like 2025-11-12-18:00 (defaults to the running cycle)")
    async def leaderboard(self, interaction: discord.Interaction, cycle_id: Optional[str] = None):
        await interaction.response.defer()
        try:
            board = await self.leaderboard_service.get_cycle_leaderboard(
                cycle_id, limit=UIConstants.LEADERBOARD_PAGE_SIZE
            )
        except SubGamesError as e:
            await interaction.followup.send(embed=ErrorEmbeds.from_error(e))
            return

        embed = discord.Embed(
            title=f"{UIConstants.TROPHY_EMOJI} Cycle {board.cycle_id}",
            color=UIConstants.GOLD_RANK_COLOR
        )
        if not board.rows:
            embed.description = "No points yet this cycle. Be the first!"
        else:
            embed.description = "\n".join(
                f"{RANK_MEDALS.get(row.rank, f'**{row.rank}.**')} {row.display_name} - "
                f"**{row.total_points}** pts ({row.supporter_count} supporters)"
                for row in board.rows
            )
        await interaction.followup.send(embed=embed)

    @app_commands.command(name="winner", description="See who won a cycle")
    @app_commands.describe(cycle_id="Cycle key (defaults to the most recently closed cycle)")
    async def winner(self, interaction: discord.Interaction, cycle_id: Optional[str] = None):
        await interaction.response.defer()
        try:
            summary = await self.settlement_service.get_winner(cycle_id)
        except SubGamesError as e:
            await interaction.followup.send(embed=ErrorEmbeds.from_error(e))
            return

        if summary is None:
            await interaction.followup.send("No winner has been recorded for that cycle yet.")
            return

        embed = discord.Embed(
            title=f"{UIConstants.TROPHY_EMOJI} {summary.winner_name} won cycle {summary.cycle_id}",
            description=f"**{summary.final_score}** points from {summary.supporter_count} supporters",
            color=UIConstants.GOLD_RANK_COLOR
        )
        if summary.promotional_url:
            embed.add_field(name="Check them out", value=summary.promotional_url, inline=False)
        if summary.winner_photo_url:
            embed.set_thumbnail(url=summary.winner_photo_url)
        embed.set_footer(text="Backed someone else? Use /click-winner-link for a pity point.")
        await interaction.followup.send(embed=embed)

    @app_commands.command(name="pity-status", description="Check whether you have a pity point to spend")
    async def pity_status(self, interaction: discord.Interaction):
        status = await self.pity_service.get_pity_status(str(interaction.user.id))
        if status.has_pity_point:
            message = (
                f"{UIConstants.GIFT_EMOJI} You have a pity point from cycle {status.cycle_id}. "
                f"Visit <@{status.winner_id}>'s link with `/click-winner-link` to give your creator +1!"
            )
        else:
            message = f"No unspent pity point for cycle {status.cycle_id}."
        await interaction.response.send_message(message, ephemeral=True)

    @app_commands.command(name="click-winner-link", description="Visit the last winner's link and spend your pity point")
    async def click_winner_link(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True)
        try:
            summary = await self.settlement_service.get_winner()
            redemption = await self.pity_service.click_winner_link(
                str(interaction.user.id),
                summary.cycle_id if summary else None,
                summary.promotional_url if summary else None
            )
        except SubGamesError as e:
            await interaction.followup.send(embed=ErrorEmbeds.from_error(e), ephemeral=True)
            return

        lines = []
        if summary and summary.promotional_url:
            lines.append(f"🔗 {summary.promotional_url}")
        if redemption.pity_point_applied:
            lines.append(
                f"{UIConstants.GIFT_EMOJI} Pity point applied: **+{redemption.points_awarded}** to "
                f"<@{redemption.to_creator}> in cycle {redemption.cycle_id}."
            )
        else:
            lines.append("No pity point applied this time.")
        await interaction.followup.send("\n".join(lines), ephemeral=True)

    @app_commands.command(name="creator-info", description="Look up a creator's link and referral stats")
    @app_commands.describe(creator="Creator to look up")
    @rate_limit(RateLimitConstants.CHANNEL_LOOKUP)
    async def creator_info(self, interaction: discord.Interaction, creator: discord.Member):
        record = await self.bot.db.get_user(str(creator.id))
        if record is None or not record.is_creator:
            await interaction.response.send_message(f"{creator.mention} isn't a registered creator.", ephemeral=True)
            return

        embed = discord.Embed(title=record.display_name, color=UIConstants.DEFAULT_EMBED_COLOR)
        if record.promotional_url:
            embed.add_field(name="Link", value=record.promotional_url, inline=False)
        embed.add_field(name="Referral Clicks", value=str(record.referral_clicks))
        embed.set_thumbnail(url=creator.display_avatar.url)
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @app_commands.command(name="referral", description="Open a creator's promotional link")
    @app_commands.describe(creator="Creator whose link you're visiting")
    async def referral(self, interaction: discord.Interaction, creator: discord.Member):
        try:
            await self.referral_service.track_referral_click(str(creator.id), str(interaction.user.id))
        except SubGamesError as e:
            await interaction.response.send_message(embed=ErrorEmbeds.from_error(e), ephemeral=True)
            return

        record = await self.bot.db.get_user(str(creator.id))
        await interaction.response.send_message(f"🔗 {record.promotional_url}", ephemeral=True)

    @app_commands.command(name="admin-calculate-winner", description="Settle a cycle now (Owner only)")
    @app_commands.describe(
        cycle_id="Cycle key (defaults to the most recently closed cycle)",
        force="Recompute and overwrite an existing winner"
    )
    async def admin_calculate_winner(self, interaction: discord.Interaction,
                                     cycle_id: Optional[str] = None, force: bool = False):
        if await self._deny_non_owner(interaction):
            return

        await interaction.response.defer(ephemeral=True)
        logger.info(f"Admin {interaction.user.id} triggered settlement for {cycle_id or 'latest cycle'} (force={force})")
        try:
            result = await self.settlement_service.settle_cycle(cycle_id, force=force)
        except SubGamesError as e:
            await interaction.followup.send(embed=ErrorEmbeds.from_error(e), ephemeral=True)
            return

        if result.no_entries:
            description = f"No leaderboard entries for cycle {result.cycle_id}. Nothing written."
        else:
            verb = "Settled" if result.created else "Already settled"
            description = (
                f"{verb}: **{result.winner.winner_name}** with **{result.winner.final_score}** points "
                f"({result.winner.supporter_count} supporters)."
            )
        embed = discord.Embed(
            title=f"Cycle {result.cycle_id}",
            description=description,
            color=discord.Color.green(),
            timestamp=datetime.now(timezone.utc)
        )
        await interaction.followup.send(embed=embed, ephemeral=True)

    @app_commands.command(name="admin-award-pity", description="Re-run pity point issuance for a cycle (Owner only)")
    @app_commands.describe(cycle_id="Cycle key (defaults to the most recently closed cycle)")
    async def admin_award_pity(self, interaction: discord.Interaction, cycle_id: Optional[str] = None):
        if await self._deny_non_owner(interaction):
            return

        await interaction.response.defer(ephemeral=True)
        logger.info(f"Admin {interaction.user.id} triggered pity issuance for {cycle_id or 'latest cycle'}")
        try:
            result = await self.pity_service.award_pity_points(cycle_id)
        except SubGamesError as e:
            await interaction.followup.send(embed=ErrorEmbeds.from_error(e), ephemeral=True)
            return

        if result.winner_id is None:
            await interaction.followup.send(f"❌ Cycle {result.cycle_id} has no winner yet.", ephemeral=True)
            return
        await interaction.followup.send(
            f"✅ {result.eligible_count} players eligible for a pity point from cycle {result.cycle_id}.",
            ephemeral=True
        )


async def setup(bot):
    await bot.add_cog(CycleCog(bot))
