from __future__ import annotations
from fastapi import Request
from app.services.prepump_engine import PrePumpEngine
from app.services.store import Store
from app.services.token_feed import TokenFeed


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_engine(request: Request) -> PrePumpEngine:
    return request.app.state.engine


def get_feed(request: Request) -> TokenFeed:
    return request.app.state.feed
