"""
REST API for the practice simulation.

    POST /api/sim/start  {userId, personaType}              → {attemptId, persona, state}
    POST /api/sim/step   {attemptId, repUtterance, requestId?} → {prospectReply, state, liveMetrics, terminal}
    POST /api/sim/end    {attemptId}                         → {eval, metrics, attempt}
    GET  /api/sim/{attemptId}                                → attempt snapshot

Run: uvicorn dooriq.api:app --host 127.0.0.1 --port 8080
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from dooriq.errors import SimulationError
from dooriq.logger import logger
from dooriq.settings import settings
from dooriq.simulation import SimulationService

_service: Optional[SimulationService] = None


# ── Error helpers ──────────────────────────────────────

class APIError(Exception):
    """Structured API exception with HTTP status code."""

    def __init__(self, status_code: int, code: str, message: str):
        self.status_code = status_code
        self.code = code
        self.message = message
        super().__init__(message)


def _error_payload(code: str, message: str) -> dict:
    return {"error": {"code": code, "message": message}}


# ── App ───────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    global _service
    _service = SimulationService()
    logger.info(
        "Simulation service ready",
        storage=settings.storage.backend,
        reply_backend=settings.simulation.reply_backend,
    )
    yield
    _service = None


app = FastAPI(title="DoorIQ Practice Simulation API", version="1.0.0", lifespan=lifespan)


def get_service() -> SimulationService:
    if _service is None:
        raise APIError(503, "UNAVAILABLE", "Simulation service is not initialized")
    return _service


@app.exception_handler(APIError)
async def api_error_handler(_: Request, exc: APIError):
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_payload(exc.code, exc.message),
    )


@app.exception_handler(SimulationError)
async def simulation_error_handler(_: Request, exc: SimulationError):
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_payload(exc.code, exc.message),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(_: Request, exc: RequestValidationError):
    errors = exc.errors()
    first_error = errors[0].get("msg") if errors else "Invalid request payload"
    return JSONResponse(
        status_code=400,
        content=_error_payload("BAD_REQUEST", first_error),
    )


# ── Models ────────────────────────────────────────────

class StartRequest(BaseModel):
    userId: str = ""
    personaType: str = "random"


class StepRequest(BaseModel):
    attemptId: str
    repUtterance: str
    requestId: Optional[str] = None


class EndRequest(BaseModel):
    attemptId: str


# ── Endpoints ─────────────────────────────────────────
# Plain `def` handlers: the service does blocking I/O (SQLite, LLM HTTP),
# FastAPI runs them in its threadpool.

def _internal_error(action: str, err: Exception) -> APIError:
    logger.exception(f"Error during {action}")
    return APIError(500, "INTERNAL", "Internal server error")


@app.get("/health")
def health():
    return {"status": "ok", "model": settings.llm.model}


@app.post("/api/sim/start")
def start_simulation(req: StartRequest, service: SimulationService = Depends(get_service)):
    try:
        return service.start(req.userId, req.personaType)
    except SimulationError:
        raise
    except Exception as err:
        raise _internal_error("start", err) from err


@app.post("/api/sim/step")
def step_simulation(req: StepRequest, service: SimulationService = Depends(get_service)):
    """
    One rep turn.

    A retry carrying the previous requestId (or repeating the previous
    utterance within the duplicate window) gets the cached response.
    """
    try:
        return service.step(req.attemptId, req.repUtterance, request_id=req.requestId)
    except SimulationError:
        raise
    except Exception as err:
        raise _internal_error("step", err) from err


@app.post("/api/sim/end")
def end_simulation(req: EndRequest, service: SimulationService = Depends(get_service)):
    try:
        return service.end(req.attemptId)
    except SimulationError:
        raise
    except Exception as err:
        raise _internal_error("end", err) from err


@app.get("/api/sim/{attempt_id}")
def get_attempt(attempt_id: str, service: SimulationService = Depends(get_service)):
    try:
        return service.get(attempt_id)
    except SimulationError:
        raise
    except Exception as err:
        raise _internal_error("get", err) from err
