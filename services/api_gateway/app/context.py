"""Turn a retrieval result into prompt context and a source hint.

Pure data transformation: no I/O, deterministic for a given input.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from shared.models import RetrieveResponse, Snippet, SourceFile

CONTEXT_SEPARATOR = "\n---\n"


def format_source(f: SourceFile) -> str:
    return f"• {f.name} — {f.web_url}"


def snippet_text(s: Snippet, max_chars: int) -> str:
    raw = s.text if s.text is not None else ""
    return str(raw).strip()[:max_chars]


@dataclass(frozen=True)
class ContextBundle:
    context: str
    sources_hint: str
    snippets: List[Snippet] = field(default_factory=list)
    files: List[SourceFile] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.context

    def preview(self, n: int = 400) -> str:
        return self.context[:n]


def assemble_context(
    retrieval: RetrieveResponse, *, max_chars: int = 1000, max_sources: int = 6
) -> ContextBundle:
    texts = [snippet_text(s, max_chars) for s in retrieval.snippets]
    context = CONTEXT_SEPARATOR.join(t for t in texts if t)
    hint = "\n".join(format_source(f) for f in retrieval.top_files[:max_sources])
    return ContextBundle(
        context=context,
        sources_hint=hint,
        snippets=list(retrieval.snippets),
        files=list(retrieval.top_files),
    )
