from typing import Optional

from fastapi import Header, Request

from rosetta_gateway.pipeline import NormalizerFactory

__all__ = ["get_factory", "get_request_id"]


def get_factory(request: Request) -> NormalizerFactory:
    return request.app.state.factory


def get_request_id(x_request_id: Optional[str] = Header(default=None)) -> Optional[str]:
    return x_request_id
