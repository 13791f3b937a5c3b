"""Chat router for the API gateway.

Linear orchestration per request:
- Retrieval (proxy ``/retrieve``) -> Context assembly -> Generation ->
  Quality gate (one strict retry on evasive/short answers) ->
  Fallback (deterministic answer from snippets) -> Sources section ->
  Response.

Failures on the mandatory path (validation, retrieval) abort the request
and surface as an error envelope through the app's exception handlers.
Generation failures never do: the completion client absorbs them and the
fallback guarantees a non-empty answer.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from services.llm_generate.app.completion import CompletionClient
from services.llm_generate.app.prompts import MAIN_RULES, STRICT_RULES, build_messages
from services.llm_generate.app.quality import (
    build_fallback_answer,
    ensure_sources_section,
    is_evasive,
)
from shared.models import ChatRequest, ChatResponse, DebugInfo, ErrorResponse
from shared.settings import Settings
from shared.tracing import log_event, span

from ..context import assemble_context
from ..deps import get_completion_client, get_retrieval_client, get_settings
from ..retrieval import RetrievalClient, build_retrieve_request

router = APIRouter()


@router.post(
    "/chat",
    response_model=ChatResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def chat(
    request: ChatRequest,
    settings: Settings = Depends(get_settings),
    retrieval: RetrievalClient = Depends(get_retrieval_client),
    llm: CompletionClient = Depends(get_completion_client),
) -> ChatResponse:
    """Answer a question from documents found by the retrieval proxy."""
    correlation_id = str(uuid.uuid4())

    # Step 1: Retrieval
    retrieve_req = build_retrieve_request(request, settings)
    with span(
        "chat.retrieve",
        top_k=retrieve_req.top_k,
        path=retrieve_req.path_prefix or "(global)",
        corr=correlation_id,
    ):
        result = await retrieval.retrieve(retrieve_req)

    # Step 2: Context
    with span("chat.context", corr=correlation_id):
        bundle = assemble_context(
            result,
            max_chars=settings.context_chars_per_snippet,
            max_sources=settings.sources_hint_limit,
        )
    print(
        f"[{settings.service_name}] /chat",
        {
            "qLen": len(request.query),
            "snCount": len(bundle.snippets),
            "ctxLen": len(bundle.context),
            "path": retrieve_req.path_prefix or "(global)",
        },
    )
    log_event(
        "Retrieval",
        payload={
            "snippets": len(bundle.snippets),
            "top_files": len(bundle.files),
            "context_chars": len(bundle.context),
        },
        correlation_id=correlation_id,
    )

    # Step 3: Generation
    with span("chat.generate", corr=correlation_id):
        messages = build_messages(
            bundle.context, bundle.sources_hint, request.query, rules=MAIN_RULES
        )
        answer = await llm.complete(messages, temperature=settings.temperature)

    # Step 4: Quality gate, at most one retry
    if settings.quality_gate_enabled and not bundle.is_empty and is_evasive(answer):
        with span("chat.retry", corr=correlation_id, first_len=len(answer)):
            strict = build_messages(
                bundle.context, bundle.sources_hint, request.query, rules=STRICT_RULES
            )
            retried = await llm.complete(strict, temperature=settings.retry_temperature)
        log_event(
            "Retry",
            payload={"replaced": bool(retried), "retry_len": len(retried)},
            correlation_id=correlation_id,
        )
        if retried:
            answer = retried

    # Step 5: Finalize
    with span("chat.finalize", corr=correlation_id):
        if not answer:
            answer = build_fallback_answer(bundle.snippets, bundle.files)
            log_event(
                "Fallback",
                payload={"snippets": len(bundle.snippets)},
                correlation_id=correlation_id,
            )
        answer = ensure_sources_section(answer, bundle.files)

    debug = None
    if settings.include_debug:
        debug = DebugInfo(
            context_preview=bundle.preview(400), snippets_count=len(bundle.snippets)
        )

    return ChatResponse(
        query=request.query,
        used=retrieve_req.used(),
        answer=answer,
        snippets=bundle.snippets,
        top_files=bundle.files,
        debug=debug,
    )
