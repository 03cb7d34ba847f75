from __future__ import annotations

from .config import config_sha256, load_config
from .config_schema import AppConfig
from .dispatcher import MediaDispatcher, build_dispatcher
from .entities import EntityKind, EntityState, RemoteEntity
from .errors import AuthError, ConfigError, EntityFetchError, MediaFetchError
from .media import ExtractedMedia, MediaKind, media_to_dict
from .normalize import post_description_from_listing_item
from .post import PostDescription
from .redgifs import RedgifsClient, RedgifsTokenClient, shared_token_client
from .sizing import LayoutInsets
from .streamable import StreamableClient

__all__ = [
    "AppConfig",
    "AuthError",
    "ConfigError",
    "EntityFetchError",
    "EntityKind",
    "EntityState",
    "ExtractedMedia",
    "LayoutInsets",
    "MediaDispatcher",
    "MediaFetchError",
    "MediaKind",
    "PostDescription",
    "RedgifsClient",
    "RedgifsTokenClient",
    "RemoteEntity",
    "StreamableClient",
    "build_dispatcher",
    "config_sha256",
    "load_config",
    "media_to_dict",
    "post_description_from_listing_item",
    "shared_token_client",
]
