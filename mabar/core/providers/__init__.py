"""LLM providers (LiteLLM)."""
