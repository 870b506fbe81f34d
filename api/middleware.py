# ============================================================================
# File: api/middleware.py
# ============================================================================

import time
import uuid
import logging
from typing import Optional
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from core.exceptions import MassIndexerException
from schemas.api import ErrorResponse

logger = logging.getLogger(__name__)

JOBS_PREFIX = "/jobs/"


def job_id_of(path: str) -> Optional[str]:
    """Job id addressed by a /jobs/{job_id} path, if any"""
    if not path.startswith(JOBS_PREFIX):
        return None
    return path[len(JOBS_PREFIX):].split("/", 1)[0] or None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with a request id (reused from an incoming
    X-Request-ID header) and the job it addresses, and renders indexer
    errors escaping a route as an ErrorResponse.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or f"req_{uuid.uuid4().hex[:12]}"
        job_id = job_id_of(request.url.path)
        log_context = {"request_id": request_id, "job_id": job_id}
        start_time = time.perf_counter()

        request.state.request_id = request_id
        request.state.job_id = job_id

        try:
            response: Response = await call_next(request)
        except MassIndexerException as e:
            logger.error(
                f"[{request_id}] {request.method} {request.url.path} failed: {e.message}",
                extra={**log_context, "error_context": e.to_dict()}
            )
            response = JSONResponse(
                status_code=500,
                content=ErrorResponse(error=e.message, detail=type(e).__name__).model_dump(mode="json")
            )

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        logger.debug(
            f"[{request_id}] {request.method} {request.url.path} -> {response.status_code} ({latency_ms}ms)",
            extra=log_context
        )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-API-Latency-ms"] = str(latency_ms)
        return response
