"""
Telegram channel → image host relay.

Receives channel posts over a webhook, uploads the photo to an image host
and optionally replies in the channel with the hosted URL.
"""
__version__ = "0.1.0"
