"""
System prompt templates and message assembly for the chat completion.

Design goals
- Answers grounded only in the retrieved document fragments
- Markdown output with fixed sections: Resumen / Evidencia / Fuentes
- Spanish, professional and concise
- When fragments exist, access is legitimate: no "no tengo acceso" disclaimers
"""

from __future__ import annotations

from typing import List

from shared.models import ChatMessage

# ===========================  ANSWER GENERATION  =========================== #

MAIN_RULES = (
    "Responde usando SOLO el contexto de documentos proporcionado. Si hay fragmentos, "
    "asume acceso legítimo y NO digas “no tengo acceso…”. Si el contexto está "
    "vacío/insuficiente, dilo y sugiere qué documento faltaría.\n\n"
    "Salida (Markdown):\n"
    "1) **Resumen** breve y directo.\n"
    "2) **Evidencia**: 2–5 citas cortas (1–3 líneas) con breve contexto.\n"
    "3) **Fuentes**: nombre, enlace si existe y ubicación (página/encabezado/rango; "
    "si no hay, “s/d”).\n\n"
    "Precisión y estilo:\n"
    "- Nunca inventes datos/citas. Si no hay evidencia, dilo.\n"
    "- Si es hoja de cálculo/CSV y no ves celdas, pide el archivo.\n"
    "- Si la pregunta no requiere documentos, respóndelo pero señala que no usaste "
    "archivos del usuario.\n"
    "- Español claro, profesional y conciso; pide aclaración solo si es crítico."
)

# =============================  STRICT RETRY  ============================== #

STRICT_RULES = (
    "Tienes acceso legítimo a los fragmentos de documentos incluidos abajo; ya fueron "
    "recuperados para ti. PROHIBIDO decir que no tienes acceso, que no encuentras "
    "información o que no puedes ayudar, y PROHIBIDO añadir descargos de "
    "responsabilidad.\n\n"
    "Usa directamente el contexto para responder la pregunta, aunque la evidencia sea "
    "parcial: extrae lo que sí está y señala en una línea qué falta.\n\n"
    "Salida (Markdown):\n"
    "1) **Resumen** breve y directo.\n"
    "2) **Evidencia**: 2–5 citas textuales cortas del contexto.\n"
    "3) **Fuentes**: nombre y enlace de cada documento usado."
)

# ============================  MESSAGE BUILDER  ============================ #

CONTEXT_HEADER = "Contexto (fragmentos de documentos internos):"
EMPTY_CONTEXT = "(vacío)"
SOURCES_HEADER = "Fuentes sugeridas:"
NO_SOURCES = "(ninguna)"


def build_messages(
    context: str, sources_hint: str, query: str, *, rules: str = MAIN_RULES
) -> List[ChatMessage]:
    """Return the four messages in the order the model expects.

    rules, context, source hint, then the user's query verbatim. Empty
    context and hint are marked explicitly instead of being left out.
    """
    sources = (
        f"{SOURCES_HEADER}\n{sources_hint}" if sources_hint else f"{SOURCES_HEADER} {NO_SOURCES}"
    )
    return [
        ChatMessage(role="system", content=rules),
        ChatMessage(role="system", content=f"{CONTEXT_HEADER}\n{context or EMPTY_CONTEXT}"),
        ChatMessage(role="system", content=sources),
        ChatMessage(role="user", content=query),
    ]
