"""
Pulse - ChannelDirectory
=========================
Static snapshot of channel id → name, fetched once at startup from an
HTTP endpoint returning ``[{"id": ..., "name": ...}, ...]``.

Channels created or renamed after startup are not seen until restart.
"""

from __future__ import annotations

from collections.abc import Iterable

import httpx
from pydantic import BaseModel, ConfigDict, TypeAdapter

from pulse.config.settings import settings
from pulse.src.utils.logger import get_logger

logger = get_logger(__name__)


class ChannelInfo(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    name: str


_CHANNEL_LIST = TypeAdapter(list[ChannelInfo])


class ChannelDirectory:
    """Immutable id → ``ChannelInfo`` lookup."""

    __slots__ = ("_by_id",)

    def __init__(self, channels: Iterable[ChannelInfo]) -> None:
        self._by_id: dict[str, ChannelInfo] = {channel.id: channel for channel in channels}


    @classmethod
    async def load(cls, url: str | None = None, client: httpx.AsyncClient | None = None) -> "ChannelDirectory":
        """
        Fetch the directory over HTTP.

        Raises
        ------
        httpx.HTTPError
            On connection failures or non-2xx responses.
        """
        url = url or settings.CHANNEL_DIRECTORY_URL
        if client is None:
            async with httpx.AsyncClient() as owned:
                response = await owned.get(url)
        else:
            response = await client.get(url)
        response.raise_for_status()

        directory = cls(_CHANNEL_LIST.validate_python(response.json()))
        logger.info("Loaded channel directory: %d channel(s) from %s", len(directory), url)
        return directory


    def get(self, channel_id: str) -> ChannelInfo | None:
        return self._by_id.get(channel_id)


    def name_for(self, channel_id: str) -> str:
        """Channel name, or the raw id when the channel is unknown."""
        channel = self._by_id.get(channel_id)
        return channel.name if channel else channel_id


    def __contains__(self, channel_id: object) -> bool:
        return channel_id in self._by_id


    def __len__(self) -> int:
        return len(self._by_id)
