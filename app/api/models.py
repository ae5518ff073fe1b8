from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Snake-case fields in Python, camelCase on the wire (what game clients send)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EmoteRecord(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str = ""
    type: str = ""
    active: bool = False
    started_at: int = 0
    # 0 means "never seen" and is evicted by the next sweep.
    last_seen: int = 0


class CapeRecord(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str = ""
    cape_id: str = "default"
    custom_url: str = ""
    enabled: bool = False
    client_key: str = ""
    last_seen: int = 0


class PublicCapeRecord(WireModel):
    """Cape record as served to other players; the ownership key stays server-side."""

    name: str
    cape_id: str
    custom_url: str
    enabled: bool
    last_seen: int


class EmoteUpdateRequest(WireModel):
    # Clients built on loose JSON sometimes send numbers where strings belong.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True)

    name: str | None = None
    type: str | None = None
    # Only an explicit `false` deactivates; omitted or null means active.
    active: bool | None = None


class CapeUpdateRequest(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True)

    name: str | None = None
    cape_id: str | None = None
    custom_url: str | None = None
    enabled: bool | None = None
    client_key: str | None = None
    last_seen: int | None = None


class EmoteSnapshot(WireModel):
    revision: int
    server_now: int
    records: dict[str, EmoteRecord] = Field(default_factory=dict)


class EmoteWriteResponse(BaseModel):
    ok: bool = True
    revision: int


class OkResponse(BaseModel):
    ok: bool = True


class PersistedDocument(WireModel):
    """Flat document written by the snapshot stores.

    Dumped by alias so the file keeps the `capes`/`emotes`/`emotesRev` layout.
    """

    capes: dict[str, CapeRecord] = Field(default_factory=dict)
    emotes: dict[str, EmoteRecord] = Field(default_factory=dict)
    emotes_rev: int = 0
