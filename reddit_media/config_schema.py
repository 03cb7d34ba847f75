from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

PositiveInt = Annotated[int, Field(ge=1)]
NonNegativeFloat = Annotated[float, Field(ge=0.0)]
PositiveFloat = Annotated[float, Field(gt=0.0)]


def _normalize_host_list(values: list[str], *, allow_empty: bool) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()

    for item in values:
        host = (item or "").strip().casefold().rstrip(".")
        if not host:
            continue
        if host in seen:
            continue
        seen.add(host)
        out.append(host)

    if not allow_empty and not out:
        raise ValueError("must contain at least one non-empty host")
    return out


def _validate_base_url(value: str) -> str:
    url = (value or "").strip().rstrip("/")
    if not (url.startswith("https://") or url.startswith("http://")):
        raise ValueError("must be an absolute http(s) URL")
    return url


class LayoutConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    gallery_spacing: NonNegativeFloat = 8.0
    compact_thumb_size: PositiveFloat = 75.0
    compact_thumb_scale: PositiveFloat = 1.0


class HostsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    # Suffix match on the parsed host.
    platform_hosts: list[str] = Field(default_factory=lambda: ["reddit.com"])
    mirror_hosts: list[str] = Field(default_factory=lambda: ["app.winston.cafe"])

    # Exact match on the parsed host.
    redgifs_hosts: list[str] = Field(
        default_factory=lambda: ["www.redgifs.com", "v3.redgifs.com"]
    )

    # Substring match on the post's domain field.
    streamable_marker: str = "streamable.com"
    redgifs_marker: str = "redgifs.com"

    @field_validator("platform_hosts", "redgifs_hosts")
    @classmethod
    def _normalize_required_hosts(cls, v: list[str]) -> list[str]:
        return _normalize_host_list(v, allow_empty=False)

    @field_validator("mirror_hosts")
    @classmethod
    def _normalize_mirror_hosts(cls, v: list[str]) -> list[str]:
        return _normalize_host_list(v, allow_empty=True)

    @field_validator("streamable_marker", "redgifs_marker")
    @classmethod
    def _marker_must_be_non_empty(cls, v: str) -> str:
        marker = (v or "").strip().casefold()
        if not marker:
            raise ValueError("must be non-empty")
        return marker


class RedgifsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    auth_url: str = "https://api.redgifs.com/v2/auth/temporary"
    api_base: str = "https://api.redgifs.com/v2"
    timeout_secs: PositiveFloat = 15.0
    user_agent: str | None = None
    accept_language: str = "en;q=1.0"

    @field_validator("auth_url", "api_base")
    @classmethod
    def _urls_must_be_absolute(cls, v: str) -> str:
        return _validate_base_url(v)


class StreamableConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    api_base: str = "https://api.streamable.com"
    timeout_secs: PositiveFloat = 15.0

    @field_validator("api_base")
    @classmethod
    def _api_base_must_be_absolute(cls, v: str) -> str:
        return _validate_base_url(v)


class RedditConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    base_url: str = "https://www.reddit.com"
    user_agent: str = "python:reddit_media:0.1 (media extraction)"
    timeout_secs: PositiveFloat = 15.0
    self_fetch: bool = True
    max_workers: PositiveInt = 4

    @field_validator("base_url")
    @classmethod
    def _base_url_must_be_absolute(cls, v: str) -> str:
        return _validate_base_url(v)

    @model_validator(mode="after")
    def _user_agent_required(self) -> "RedditConfig":
        if not self.user_agent.strip():
            raise ValueError("user_agent must be non-empty")
        return self


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    layout: LayoutConfig = Field(default_factory=LayoutConfig)
    hosts: HostsConfig = Field(default_factory=HostsConfig)
    redgifs: RedgifsConfig = Field(default_factory=RedgifsConfig)
    streamable: StreamableConfig = Field(default_factory=StreamableConfig)
    reddit: RedditConfig = Field(default_factory=RedditConfig)
