"""
Repository for content filters, one record per ``(guild_id, channel_id)``.
"""

from __future__ import annotations

from typing import List

from autocord.database.state_store import Family, StateStore, make_key
from autocord.datatypes.filter_datatypes import GUILD_WIDE, ContentFilter
from autocord.engine.errors import ConfigurationError
from autocord.util.logger import get_logger

logger = get_logger("filter_repo")


class FilterRepo:
    """Typed access to the Filters family."""

    def __init__(self, store: StateStore) -> None:
        self._store = store

    async def get(self, guild_id: str, channel_id: str = GUILD_WIDE) -> ContentFilter | None:
        raw = await self._store.get(Family.FILTERS, make_key(guild_id, channel_id))
        return ContentFilter.from_dict(raw) if raw else None

    async def put(self, content_filter: ContentFilter) -> None:
        await self._store.put(
            Family.FILTERS,
            make_key(content_filter.guild_id, content_filter.channel_id),
            content_filter.to_dict(),
            scope=content_filter.guild_id,
        )

    async def delete(self, guild_id: str, channel_id: str = GUILD_WIDE) -> bool:
        return await self._store.delete(Family.FILTERS, make_key(guild_id, channel_id))

    async def applicable(self, guild_id: str, channel_id: str | None) -> List[ContentFilter]:
        """Enabled filters for a message: the channel's own first, then the guild-wide one."""
        filters: List[ContentFilter] = []
        candidates = [channel_id, GUILD_WIDE] if channel_id else [GUILD_WIDE]
        for candidate in candidates:
            try:
                content_filter = await self.get(guild_id, candidate)
            except (ConfigurationError, KeyError, TypeError, ValueError) as exc:
                logger.error("[FILTER REPO] Skipping malformed filter %s/%s: %s", guild_id, candidate, exc)
                continue
            if content_filter and content_filter.enabled and content_filter.rules:
                filters.append(content_filter)
        return filters
