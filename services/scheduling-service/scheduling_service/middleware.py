import json
import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

logger = logging.getLogger("scheduling_service.access")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.state.request_id = request_id

        start = time.perf_counter()
        try:
            response: Response = await call_next(request)
        except Exception:
            self._log(request, request_id, 500, start)
            raise

        response.headers["X-Request-Id"] = request_id
        self._log(request, request_id, response.status_code, start)
        return response

    @staticmethod
    def _log(request: Request, request_id: str, status_code: int, start: float):
        logger.info(
            json.dumps(
                {
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status": status_code,
                    "duration_ms": round((time.perf_counter() - start) * 1000, 2),
                    "user_sub": getattr(request.state, "user_sub", None),
                },
                separators=(",", ":"),
            )
        )
