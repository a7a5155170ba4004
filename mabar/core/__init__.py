"""Core infrastructure — config, LLM providers, Parse backend client."""
