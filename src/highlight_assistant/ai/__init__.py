"""AI client, agents, and tool wiring."""

from .client import AIClient, ApproxCharCounter, ClientSettings, TiktokenCounter, TokenCounterRegistry

__all__ = ["AIClient", "ClientSettings", "TokenCounterRegistry", "ApproxCharCounter", "TiktokenCounter"]
