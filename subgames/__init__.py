"""
SubGames - creator-support gamification bot.

Players finish short minigames to tip points toward the creator they support;
creators compete on a daily cycle that closes at 18:00, and supporters of
losing creators earn a pity point redeemable in the next cycle.
"""

__version__ = "1.0.0"
