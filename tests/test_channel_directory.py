import httpx
import pytest

from pulse.src.database.channel_directory import ChannelDirectory


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_load_parses_channel_list() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json=[{"id": "C123", "name": "general", "is_private": False}, {"id": "C456", "name": "random"}])

    async with _client(handler) as client:
        directory = await ChannelDirectory.load("http://channels.test/list", client=client)

    assert seen == ["http://channels.test/list"]
    assert len(directory) == 2
    assert directory.get("C123").name == "general"


@pytest.mark.asyncio
async def test_load_raises_on_http_error() -> None:
    async with _client(lambda request: httpx.Response(503)) as client:
        with pytest.raises(httpx.HTTPStatusError):
            await ChannelDirectory.load("http://channels.test/list", client=client)


def test_name_for_falls_back_to_raw_id(directory) -> None:
    assert directory.name_for("C123") == "general"
    assert directory.name_for("C999") == "C999"
    assert "C456" in directory
    assert "C999" not in directory
    assert directory.get("C999") is None
