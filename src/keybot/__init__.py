"""
keybot: Slack bot that tracks who holds the shared access cards.

Members borrow and return cards by typing short commands in a channel;
the bot keeps an in-memory ledger of outstanding loans and posts a
reminder for cards that have not come back.
"""

__version__ = "0.1.0"
