"""tweet-engine - resilient multi-provider LLM tweet generation."""

__version__ = "0.1.0"
