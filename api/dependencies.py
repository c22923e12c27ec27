"""
FastAPI dependencies (shared across routes).

Services are constructed once in ``main.create_app`` and parked on
``app.state``; handlers receive them through these getters.
"""

from __future__ import annotations

from fastapi import Request

from config.settings import Settings
from connectors.prober import ConnectionProber
from connectors.token_manager import TokenLifecycleManager
from reels.store import ReelStore
from videos.adapter import VideoListingAdapter


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_manager(request: Request) -> TokenLifecycleManager:
    return request.app.state.token_manager


def get_prober(request: Request) -> ConnectionProber:
    return request.app.state.prober


def get_video_adapter(request: Request) -> VideoListingAdapter:
    return request.app.state.video_adapter


def get_reel_store(request: Request) -> ReelStore:
    return request.app.state.reel_store
