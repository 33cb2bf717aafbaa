"""
Remote backends for the daily challenge engine.

Modules:
- challenge_api: httpx client for questions, vocabulary, stats and server time
"""
from .challenge_api import ChallengeApiClient

__all__ = ["ChallengeApiClient"]
