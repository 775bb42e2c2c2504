"""
Colours and emojis shared by the workflow and promotion embeds.
"""
import discord


class MessageColors:
    """Embed colours per message type"""
    INFO = discord.Color.from_rgb(0, 153, 255)
    PROMOTION = discord.Color.from_rgb(0, 255, 0)
    BREAK = discord.Color.from_rgb(255, 165, 0)
    RESIGNATION = discord.Color.from_rgb(220, 20, 60)
    COMEBACK_REQUEST = discord.Color.from_rgb(0, 255, 0)
    COMEBACK = discord.Color.from_rgb(50, 205, 50)


class MessageEmojis:
    """Emojis per message type"""
    PROMOTION = "🎉"
    BREAK = "⏳"
    RESIGNATION = "💔"
    COMEBACK = "⬆️"
