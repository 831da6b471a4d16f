"""HTTP adapter around the normalization pipelines."""

import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse

from rosetta_gateway.dependencies import get_factory, get_request_id
from rosetta_gateway.events import create_sse_response
from rosetta_gateway.pipeline import NormalizerFactory
from rosetta_gateway.schemas import CorrectionResult, ResponseEnvelope

router = APIRouter(prefix="/v1/normalize", tags=["normalize"])
logger = logging.getLogger(__name__)


class NormalizedResponse(BaseModel):
    envelope: ResponseEnvelope
    fixes_applied: List[str] = Field(default_factory=list)
    issues: List[str] = Field(default_factory=list)
    correction: Optional[CorrectionResult] = None


class StreamRequest(BaseModel):
    chunks: List[Any] = Field(..., description="Upstream chunks in arrival order")
    model: Optional[str] = None


@router.post("/response", response_model=NormalizedResponse)
async def normalize_response(
    raw: Dict[str, Any] = Body(...),
    factory: NormalizerFactory = Depends(get_factory),
    request_id: Optional[str] = Depends(get_request_id),
) -> NormalizedResponse:
    """Normalize one buffered upstream response."""
    normalizer = factory.buffered(request_id)
    envelope = normalizer.normalize(raw)
    logger.info(f"[NORMALIZE] Buffered response normalized, terminal reason {envelope.terminal_reason}")
    return NormalizedResponse(
        envelope=envelope,
        fixes_applied=normalizer.fixed.fixes_applied if normalizer.fixed else [],
        issues=normalizer.fixed.issues if normalizer.fixed else [],
        correction=normalizer.correction,
    )


@router.post("/stream")
async def normalize_stream(
    body: StreamRequest = Body(...),
    factory: NormalizerFactory = Depends(get_factory),
    request_id: Optional[str] = Depends(get_request_id),
) -> EventSourceResponse:
    """Replay upstream chunks through the streaming pipeline as server-sent events."""
    normalizer = factory.stream(request_id, model=body.model)

    async def chunks() -> AsyncIterator[Any]:
        for chunk in body.chunks:
            yield chunk

    logger.info(f"[NORMALIZE] Streaming {len(body.chunks)} chunks")
    return create_sse_response(normalizer.process(chunks()))
