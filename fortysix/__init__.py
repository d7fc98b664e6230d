"""
forty-six - a small WhatsApp AI bot
"""

__version__ = "1.0.0"
__logo__ = "🤖"
