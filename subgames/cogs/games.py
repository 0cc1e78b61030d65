"""
Games Cog - session issuance, result submission and creator picks.

Players pick a creator for the running cycle, start a game session, play,
then submit the session id. Points go to whichever creator they back.
"""

import discord
from discord import app_commands
from discord.ext import commands
from typing import Optional
from datetime import timezone

from subgames.constants import GAME_RULES, DIFFICULTIES, UIConstants
from subgames.utils.error_embeds import ErrorEmbeds
from subgames.utils.exceptions import SubGamesError
from subgames.utils.logger import setup_logger

logger = setup_logger(__name__)

GAME_CHOICES = [app_commands.Choice(name=game_type, value=game_type) for game_type in GAME_RULES]
DIFFICULTY_CHOICES = [app_commands.Choice(name=d.title(), value=d) for d in DIFFICULTIES]


class GamesCog(commands.Cog):
    """Minigame sessions and point submissions"""

    def __init__(self, bot):
        self.bot = bot
        self.session_service = bot.session_service
        self.ledger_service = bot.ledger_service

    @app_commands.command(name="pick-creator", description="Back a creator for the current cycle")
    @app_commands.describe(creator="The creator your points will go to")
    async def pick_creator(self, interaction: discord.Interaction, creator: discord.Member):
        await interaction.response.defer(ephemeral=True)
        try:
            outcome = await self.ledger_service.pick_creator(
                str(interaction.user.id), str(creator.id), interaction.user.display_name
            )
        except SubGamesError as e:
            await interaction.followup.send(embed=ErrorEmbeds.from_error(e), ephemeral=True)
            return

        if outcome.switched:
            description = (
                f"Switched to {creator.mention}. Your **{outcome.points_earned}** points this cycle "
                f"moved with you (switch #{outcome.switch_count})."
            )
        elif outcome.previous_creator_id == outcome.creator_id:
            description = f"You're already backing {creator.mention} this cycle."
        else:
            description = f"You're now backing {creator.mention}. Play games to earn them points!"

        embed = discord.Embed(
            title=f"{UIConstants.TARGET_EMOJI} Creator Picked",
            description=description,
            color=UIConstants.SUCCESS_COLOR
        )
        embed.set_footer(text=f"Cycle {outcome.cycle_id}")
        await interaction.followup.send(embed=embed, ephemeral=True)

    @app_commands.command(name="start-game", description="Start a minigame session")
    @app_commands.describe(game="Which minigame to play", difficulty="Difficulty level")
    @app_commands.choices(game=GAME_CHOICES, difficulty=DIFFICULTY_CHOICES)
    async def start_game(self, interaction: discord.Interaction,
                         game: app_commands.Choice[str],
                         difficulty: Optional[app_commands.Choice[str]] = None):
        try:
            game_session = await self.session_service.start_session(
                str(interaction.user.id),
                game.value,
                difficulty.value if difficulty else None,
                interaction.user.display_name
            )
        except SubGamesError as e:
            await interaction.response.send_message(embed=ErrorEmbeds.from_error(e), ephemeral=True)
            return

        rule = GAME_RULES[game.value]
        embed = discord.Embed(
            title=f"{UIConstants.GAME_EMOJI} {game.name} started",
            description=(
                f"Session `{game_session.id}`\n"
                f"Worth **{game_session.expected_point_value}** points. Finish between "
                f"{rule.min_seconds:g}s and {rule.max_seconds:g}s, then use `/submit-game-result`."
            ),
            color=UIConstants.DEFAULT_EMBED_COLOR
        )
        embed.add_field(
            name="Expires",
            value=discord.utils.format_dt(
                game_session.expires_at.replace(tzinfo=timezone.utc), style="R"
            )
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @app_commands.command(name="submit-game-result", description="Submit a finished minigame session")
    @app_commands.describe(
        session_id="Session id from /start-game",
        time_taken="Seconds the game took on your side"
    )
    async def submit_game_result(self, interaction: discord.Interaction, session_id: str,
                                 time_taken: Optional[float] = None):
        await interaction.response.defer(ephemeral=True)
        try:
            outcome = await self.ledger_service.submit_result(
                str(interaction.user.id), session_id.strip(), time_taken
            )
        except SubGamesError as e:
            await interaction.followup.send(embed=ErrorEmbeds.from_error(e), ephemeral=True)
            return

        embed = discord.Embed(
            title="✅ Points Awarded",
            description=f"**+{outcome.points_awarded}** points to <@{outcome.creator_id}>",
            color=UIConstants.SUCCESS_COLOR
        )
        embed.set_footer(text=f"Cycle {outcome.cycle_id} • {outcome.elapsed_seconds:.1f}s")
        await interaction.followup.send(embed=embed, ephemeral=True)

    @app_commands.command(name="my-stats", description="View your games, points and current pick")
    async def my_stats(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True)
        try:
            stats = await self.ledger_service.get_user_stats(str(interaction.user.id))
        except Exception as e:
            logger.error(f"Error fetching stats for {interaction.user.id}: {e}", exc_info=True)
            await interaction.followup.send(embed=ErrorEmbeds.command_error("Could not load your stats."), ephemeral=True)
            return

        if stats is None:
            await interaction.followup.send(
                "You haven't played yet. Use `/pick-creator` then `/start-game`!", ephemeral=True
            )
            return

        embed = discord.Embed(title=f"📊 {interaction.user.display_name}", color=UIConstants.DEFAULT_EMBED_COLOR)
        embed.add_field(name="Games Played", value=str(stats.total_games_played))
        embed.add_field(name="Points Earned", value=str(stats.total_points_earned))
        backing = f"<@{stats.current_creator_id}> ({stats.cycle_points} pts)" if stats.current_creator_id else "Nobody yet"
        embed.add_field(name="Backing This Cycle", value=backing, inline=False)
        if stats.recent_results:
            embed.add_field(
                name="Recent Games",
                value="\n".join(
                    f"{r.game_type}: +{r.points_awarded} to <@{r.tipped_to_creator}> ({r.elapsed_seconds:.1f}s)"
                    for r in stats.recent_results
                ),
                inline=False
            )
        embed.set_footer(text=f"Cycle {stats.cycle_id}")
        await interaction.followup.send(embed=embed, ephemeral=True)

    @app_commands.command(name="creators", description="List creators you can back")
    async def creators(self, interaction: discord.Interaction):
        creators = await self.bot.db.get_creators()
        if not creators:
            await interaction.response.send_message("No creators registered yet. Be the first with `/become-creator`!", ephemeral=True)
            return

        embed = discord.Embed(
            title=f"{UIConstants.TARGET_EMOJI} Creators",
            description="\n".join(f"<@{c.id}> - {c.display_name}" for c in creators[:25]),
            color=UIConstants.DEFAULT_EMBED_COLOR
        )
        embed.set_footer(text="Back one with /pick-creator")
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @app_commands.command(name="become-creator",description="Register as a creator players can back")
    @app_commands.describe(promotional_url="Link shown when you win a cycle")
    async def become_creator(self, interaction: discord.Interaction, promotional_url: str):
        if not promotional_url.startswith(("http://", "https://")):
            await interaction.response.send_message(
                embed=ErrorEmbeds.invalid_input("Promotional link must start with http:// or https://"),
                ephemeral=True
            )
            return

        await interaction.response.defer(ephemeral=True)
        await self.bot.db.register_creator(
            str(interaction.user.id),
            interaction.user.display_name,
            promotional_url,
            interaction.user.display_avatar.url
        )
        await interaction.followup.send(
            f"{UIConstants.TROPHY_EMOJI} You're registered as a creator! Players can now back you with `/pick-creator`.",
            ephemeral=True
        )


async def setup(bot):
    await bot.add_cog(GamesCog(bot))
