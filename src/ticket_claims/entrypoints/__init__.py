"""Entry points for running claim operations outside the bot."""

from .local_runner import main

__all__ = ["main"]
