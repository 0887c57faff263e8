"""
External service integrations.

- MistralProvider: httpx-based DecisionProvider for the Mistral chat API
"""
from nemesis.integrations.mistral_client import MistralProvider

__all__ = ["MistralProvider"]
