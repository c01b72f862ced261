"""TikTokLive client construction."""

from __future__ import annotations

import logging
from collections.abc import Callable

from TikTokLive import TikTokLiveClient
from TikTokLive.client.web.web_settings import WebDefaults

LOGGER = logging.getLogger("Relay")

ClientFactory = Callable[[str], TikTokLiveClient]


def make_client_factory(sign_api_key: str = "") -> ClientFactory:
    """Return a factory building one ``TikTokLiveClient`` per activation.

    The signing server key is a library-wide default, so it is applied once
    here rather than per client.
    """
    if sign_api_key:
        WebDefaults.tiktok_sign_api_key = sign_api_key
        LOGGER.info("TikTokLive signing server API key configured")

    def factory(username: str) -> TikTokLiveClient:
        return TikTokLiveClient(unique_id=f"@{username}")

    return factory
