"""Answer shaping after generation.

- ``is_evasive``: heuristic refusal/uncertainty check that triggers the
  single strict retry. It is a plain phrase list plus a length floor, so
  it can be swapped for a classifier without touching the router.
- ``ensure_sources_section``: appends a "Fuentes" section built from the
  proxy's top files when the model did not write one.
- ``build_fallback_answer``: deterministic answer from the snippets when
  the model produced nothing usable. It makes no external calls.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Sequence

from shared.models import Snippet, SourceFile

MIN_ANSWER_CHARS = 30

EVASIVE_PHRASES = (
    "no tengo acceso",
    "no puedo acceder",
    "no encuentro información",
    "no encontré información",
    "no se encontró información",
    "no dispongo de información",
    "no tengo información",
    "no hay información suficiente",
    "no cuento con información",
    "no puedo ayudarte con",
    "como modelo de lenguaje",
    "i don't have access",
    "i do not have access",
    "i couldn't find",
    "as an ai language model",
)

SOURCES_LIMIT = 5
FALLBACK_SNIPPETS = 5
FALLBACK_FILES = 5
FALLBACK_SNIPPET_CHARS = 280

# A (decorated) "Fuente(s)"/"Source(s)" heading line, optionally with one
# qualifier word: "**Fuentes**", "### Fuentes consultadas", "3) **Fuente:**"
_SOURCES_HEADING = re.compile(
    r"^[ \t>#*_\d.)-]*(?:fuentes?|sources?)\b(?:[ \t]+[^\W\d_]+)?[*_ \t]*(?::|\r?$)",
    re.IGNORECASE | re.MULTILINE,
)
_WS = re.compile(r"\s+")


def is_evasive(answer: str, phrases: Iterable[str] = EVASIVE_PHRASES) -> bool:
    text = (answer or "").strip()
    if len(text) < MIN_ANSWER_CHARS:
        return True
    lowered = text.lower()
    return any(p in lowered for p in phrases)


def has_sources_section(answer: str) -> bool:
    return bool(_SOURCES_HEADING.search(answer or ""))


def format_sources_section(files: Sequence[SourceFile], limit: int = SOURCES_LIMIT) -> str:
    lines = [f"• {f.name} — {f.web_url}" for f in files[:limit]]
    return "**Fuentes**\n" + "\n".join(lines)


def ensure_sources_section(
    answer: str, files: Sequence[SourceFile], limit: int = SOURCES_LIMIT
) -> str:
    if not files or has_sources_section(answer):
        return answer
    return f"{answer.rstrip()}\n\n{format_sources_section(files, limit)}"


def build_fallback_answer(snippets: Sequence[Snippet], files: Sequence[SourceFile]) -> str:
    bullets: List[str] = []
    for s in list(snippets)[:FALLBACK_SNIPPETS]:
        text = "" if s.text is None else str(s.text)
        bullets.append("- " + _WS.sub(" ", text)[:FALLBACK_SNIPPET_CHARS])
    sources = [f"• {f.name} ({f.web_url})" for f in list(files)[:FALLBACK_FILES]]

    evidence = "\n".join(bullets) or "- (no se encontraron fragmentos con texto)"
    fuentes = "\n".join(sources) or "• (sin fuentes)"
    return (
        "**Resumen**\n"
        "No fue posible generar respuesta del modelo, pero aquí están hallazgos relevantes.\n\n"
        f"**Evidencia**\n{evidence}\n\n"
        f"**Fuentes**\n{fuentes}"
    )
