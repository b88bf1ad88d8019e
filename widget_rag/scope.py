"""Query scope: the tenant/bot boundary for storage and retrieval.

Every vector query is restricted to exactly one bot, or to one tenant's legacy
rows that have no bot. Use ``scope_for`` to apply the bot-then-tenant fallback.
"""
from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class ByBot:
    bot_id: int


@dataclass(frozen=True)
class ByTenant:
    """Legacy tenant-wide scope; matches only rows with no bot."""
    tenant_id: int


Scope = Union[ByBot, ByTenant]


def scope_for(tenant_id: int, bot_id: Optional[int] = None) -> Scope:
    """Return ByBot when a bot id is known, else the legacy ByTenant scope."""
    if bot_id is not None:
        return ByBot(bot_id)
    return ByTenant(tenant_id)
