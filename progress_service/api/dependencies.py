from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from progress_service.services.engine import ProgressEngine


def get_progress_engine(request: Request) -> ProgressEngine:
    """The engine built by the app lifespan (see main.py)."""
    return request.app.state.engine


Engine = Annotated[ProgressEngine, Depends(get_progress_engine)]
