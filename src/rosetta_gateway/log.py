"""Request-scoped logging on top of the standard library logger."""

import logging
from typing import Any, Dict, MutableMapping, Optional, Tuple


class RequestLogger(logging.LoggerAdapter):
    """Attach the caller's request id and structured data to every record.

    Records carry ``request_id`` and ``data`` attributes so that a structured
    sink can read ``{level, message, data, requestId}`` without parsing text.
    """

    def __init__(self, logger: logging.Logger, request_id: Optional[str] = None) -> None:
        super().__init__(logger, {"request_id": request_id or "-"})

    @property
    def request_id(self) -> str:
        return str(self.extra["request_id"])

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        data: Dict[str, Any] = kwargs.pop("data", None) or {}
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("request_id", self.request_id)
        extra.setdefault("data", data)
        kwargs["extra"] = extra
        return f"[{self.request_id}] {msg}", kwargs


def get_request_logger(name: str, request_id: Optional[str] = None) -> RequestLogger:
    return RequestLogger(logging.getLogger(name), request_id)


def configure_logging(level: str, fmt: str) -> None:
    level = level.upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=fmt)
