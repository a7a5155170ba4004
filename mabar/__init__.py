"""MaBar — conversational padel matchmaking assistant."""

__version__ = "0.3.0"
