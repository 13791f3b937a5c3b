"""Dependency providers for the API gateway.

Route handlers receive configuration and upstream clients through
FastAPI's Depends mechanism. The objects themselves are created once by
``create_app`` and stored on ``app.state``; nothing here reads the
environment.
"""

from __future__ import annotations

from fastapi import Request

from services.llm_generate.app.completion import CompletionClient
from shared.settings import Settings

from .retrieval import RetrievalClient


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_retrieval_client(request: Request) -> RetrievalClient:
    return RetrievalClient(request.app.state.http_client, request.app.state.settings)


def get_completion_client(request: Request) -> CompletionClient:
    return request.app.state.completion_client
