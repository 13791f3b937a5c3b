"""Pydantic data models shared across the gateway and the generator.

These models define the request-scoped data structures used by the ARCO
backend: the inbound chat request, the body sent to the retrieval proxy,
the proxy's response and the envelopes returned to callers. Nothing here
is persisted; every instance lives for a single request.

Field names follow the JSON wire format (camelCase) through aliases so
Python code can keep snake_case attributes.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

DEFAULT_FILE_TYPES = ["pdf", "docx", "txt"]


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ChatRequest(_WireModel):
    """Body of ``POST /chat``.

    Attributes:
        query: The user's question. Required, non-empty text.
        path_prefix: Optional folder prefix overriding the configured default.
        top_k: Requested number of snippets. Accepted as-is and resolved
            leniently by the retrieval client (invalid values fall back to
            the configured default instead of failing the request).
        file_types: Requested file-extension filter, resolved leniently.
    """

    query: str = Field(..., min_length=1, strict=True)
    path_prefix: Optional[str] = Field(default=None, alias="pathPrefix")
    top_k: Optional[Any] = Field(default=None, alias="topK")
    file_types: Optional[Any] = Field(default=None, alias="fileTypes")


class RetrieveRequest(_WireModel):
    """Request body for the retrieval proxy's ``/retrieve`` endpoint.

    ``path_prefix`` is None when the search should span the whole corpus;
    it is dropped from the serialized body in that case.
    """

    query: str
    path_prefix: Optional[str] = Field(default=None, alias="pathPrefix")
    top_k: int = Field(default=8, alias="topK")
    max_chars_per_chunk: int = Field(default=1000, alias="maxCharsPerChunk")
    file_types: List[str] = Field(
        default_factory=lambda: list(DEFAULT_FILE_TYPES), alias="fileTypes"
    )
    include_file_text: bool = Field(default=False, alias="includeFileText")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    def used(self) -> Dict[str, Any]:
        """Effective parameters echoed back to the caller (prefix or null)."""
        data = self.to_payload()
        data["pathPrefix"] = self.path_prefix or None
        return data


class SourceFile(BaseModel):
    """Candidate source file as ranked by the retrieval proxy."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: Optional[str] = None
    web_url: Optional[str] = Field(default=None, alias="webUrl")

    @field_validator("name", "web_url", mode="before")
    @classmethod
    def _as_text(cls, v: Any) -> Optional[str]:
        return None if v is None else str(v)


class Snippet(BaseModel):
    """A passage returned by the retrieval proxy, optionally tied to a file."""

    model_config = ConfigDict(extra="allow")

    text: Optional[Any] = None
    file: Optional[SourceFile] = None

    # Non-object file references become None; the snippet is kept
    @field_validator("file", mode="before")
    @classmethod
    def _file_or_none(cls, v: Any) -> Any:
        return v if isinstance(v, (dict, SourceFile)) else None


def _lenient_list(raw: Any, model: type[BaseModel]) -> List[Any]:
    if not isinstance(raw, list):
        return []
    items = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        try:
            items.append(model.model_validate(entry))
        except ValidationError:
            continue
    return items


class RetrieveResponse(BaseModel):
    """Response from the retrieval proxy.

    Proxy order is preserved for both lists. ``from_payload`` never raises:
    absent or malformed lists become empty and malformed entries are dropped.
    """

    snippets: List[Snippet] = Field(default_factory=list)
    top_files: List[SourceFile] = Field(default_factory=list, alias="topFiles")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_payload(cls, payload: Any) -> "RetrieveResponse":
        data = payload if isinstance(payload, dict) else {}
        return cls(
            snippets=_lenient_list(data.get("snippets"), Snippet),
            top_files=_lenient_list(data.get("topFiles"), SourceFile),
        )


class ChatMessage(BaseModel):
    """A role-tagged message sent to the language model."""

    role: Literal["system", "user", "assistant"]
    content: str


class DebugInfo(_WireModel):
    context_preview: str = Field(alias="contextPreview")
    snippets_count: int = Field(alias="snippetsCount")


class ChatResponse(_WireModel):
    """Successful response of ``POST /chat``."""

    ok: bool = True
    query: str
    used: Dict[str, Any]
    answer: str
    snippets: List[Snippet]
    top_files: List[SourceFile] = Field(alias="topFiles")
    debug: Optional[DebugInfo] = None


class ErrorResponse(BaseModel):
    """Error envelope shared by every failing endpoint."""

    ok: bool = False
    error: str
    status: int
    details: Optional[Any] = None


class ServiceInfo(BaseModel):
    ok: bool = True
    service: str


class HealthResponse(BaseModel):
    ok: bool = True
