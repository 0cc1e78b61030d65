"""
Centralized error embeds for consistent error handling across the SubGames bot.
"""

import discord

from subgames.utils.exceptions import SubGamesError, ErrorKind

_TITLES = {
    ErrorKind.UNAUTHENTICATED: "Not Signed In",
    ErrorKind.NOT_FOUND: "Not Found",
    ErrorKind.PERMISSION_DENIED: "Permission Denied",
    ErrorKind.ALREADY_EXISTS: "Already Submitted",
    ErrorKind.DEADLINE_EXCEEDED: "Time's Up",
    ErrorKind.FAILED_PRECONDITION: "Can't Do That Yet",
    ErrorKind.RESOURCE_EXHAUSTED: "Rate Limited",
    ErrorKind.INTERNAL: "Something Went Wrong",
}


class ErrorEmbeds:
    """Centralized error embed factory for consistent error handling."""

    @staticmethod
    def from_error(error: SubGamesError) -> discord.Embed:
        """Render a domain error with its user-facing message."""
        color = discord.Color.orange() if error.kind == ErrorKind.RESOURCE_EXHAUSTED else discord.Color.red()
        return discord.Embed(
            title=_TITLES.get(error.kind, _TITLES[ErrorKind.INTERNAL]),
            description=error.user_message,
            color=color
        )

    @staticmethod
    def command_error(error: str) -> discord.Embed:
        """Create embed for general command errors."""
        return discord.Embed(
            title="Command Error",
            description=f"An error occurred: {error}\n\nPlease try again or contact an administrator.",
            color=discord.Color.red()
        )

    @staticmethod
    def invalid_input(message: str) -> discord.Embed:
        return discord.Embed(
            title="Invalid Input",
            description=message,
            color=discord.Color.red()
        )
