"""
SmoothBrains Backend: Rate Limiting

Per-IP slowapi limiter shared by the routers. Disabled in the test environment.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from smoothbrains.config import settings

limiter = Limiter(key_func=get_remote_address, enabled=settings.environment != "test")

# Applied to every endpoint that spends LLM tokens
LLM_RATE_LIMIT = settings.rate_limit
