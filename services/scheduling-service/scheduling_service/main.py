import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import LOG_LEVEL, SERVICE_NAME, WORKER_ENABLED
from .deps import publisher, queue, reminder_scheduler
from .errors import DependencyError, SchedulingError
from .middleware import RequestLoggingMiddleware
from .reminder_worker import reminder_loop
from .reminders import JOB_NAMES
from .routes import router

logger = logging.getLogger(__name__)


def configure_logging():
    logging.basicConfig(
        level=LOG_LEVEL,
        format=f"%(asctime)s [{SERVICE_NAME}] %(name)s %(levelname)s: %(message)s",
    )


configure_logging()

app = FastAPI(title="Scheduling Service")
app.add_middleware(RequestLoggingMiddleware)
app.include_router(router)

_stop_event = asyncio.Event()
_worker_task = None


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    if isinstance(exc, DependencyError):
        logger.error("upstream failure on %s %s: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "events_enabled": publisher.enabled,
        "worker_running": bool(_worker_task and not _worker_task.done()),
    }


@app.on_event("startup")
async def startup():
    global _worker_task
    try:
        await publisher.connect()
    except Exception as e:
        logger.warning("RabbitMQ connect failed at startup; continuing: %s", e)

    if WORKER_ENABLED:
        handlers = {name: reminder_scheduler.handle_reminder_job for name in JOB_NAMES}
        _worker_task = asyncio.create_task(reminder_loop(_stop_event, queue, handlers))


@app.on_event("shutdown")
async def shutdown():
    _stop_event.set()
    if _worker_task:
        try:
            await _worker_task
        except Exception:
            logger.exception("reminder worker stopped with an error")
    try:
        await publisher.close()
    except Exception as e:
        logger.warning("RabbitMQ close failed: %s", e)
