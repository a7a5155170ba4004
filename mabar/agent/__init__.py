"""Matchmaking agents — analyzer, logic, presenter, negotiation, orchestration."""
