"""FastAPI reference implementation of the HTTP scoring service."""

from __future__ import annotations

import logging
import os
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from text_quality.config import ReadabilityScript
from text_quality.scoring.heuristic import LIX_SCALE, SMOG_SCALE, heuristic_metrics

logger = logging.getLogger(__name__)

MAX_BODY_BYTES = 5 * 1024 * 1024


class AnalyzeRequest(BaseModel):
    paragraphs: list[str]
    topic: str = ""
    script: ReadabilityScript = "cyrillic"


class MetricPayload(BaseModel):
    snr: float = Field(ge=0.0, le=1.0)
    complexity: float = Field(ge=0.0, le=1.0)
    topic: float = Field(ge=0.0, le=1.0)
    role: str = ""


class BodySizeLimitMiddleware:
    """Rejects request bodies over `max_bytes` with 413.

    A declared `Content-Length` is checked up front; bodies without one
    (chunked uploads) are counted as they are received.
    """

    def __init__(self, app: ASGIApp, max_bytes: int = MAX_BODY_BYTES) -> None:
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        declared = Headers(scope=scope).get("content-length")
        if declared is not None and declared.isdigit() and int(declared) > self.max_bytes:
            response = JSONResponse(status_code=413, content={"detail": "Payload too large"})
            await response(scope, receive, send)
            return

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_bytes:
                    logger.warning("Rejected streamed body over %d bytes", self.max_bytes)
                    raise HTTPException(status_code=413, detail="Payload too large")
            return message

        response_started = False

        async def tracking_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, limited_receive, tracking_send)
        except HTTPException as exc:
            if exc.status_code != 413 or response_started:
                raise
            response = JSONResponse(status_code=413, content={"detail": exc.detail})
            await response(scope, receive, send)


app = FastAPI(title="Text Quality Scoring Service", version="0.1.0")
app.add_middleware(BodySizeLimitMiddleware)


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "scorer": "heuristic",
        "lix_scale": list(LIX_SCALE),
        "smog_scale": list(SMOG_SCALE),
    }


@app.post("/analyze", response_model=list[MetricPayload])
def analyze(request: AnalyzeRequest) -> list[dict[str, Any]]:
    metrics = heuristic_metrics(request.paragraphs, request.topic, request.script)
    logger.debug("Scored %d paragraphs", len(metrics))
    return [metric.as_dict() for metric in metrics]


def serve() -> None:
    import uvicorn

    port = int(os.getenv("PORT", "5000"))
    uvicorn.run(app, host=os.getenv("HOST", "127.0.0.1"), port=port)


if __name__ == "__main__":
    serve()
