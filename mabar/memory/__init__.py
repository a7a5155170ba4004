"""Persistence — SQLite store and API data models."""
