"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the exercise tracker backend.
Controllers are intentionally thin: they authenticate, read capped
bodies, delegate to services and map domain errors to status codes.

Endpoints implemented:
- POST /log-in
- GET /students/me
- GET /units
- GET /units/{unit_id}/exercises
- POST /units/{unit_id}/exercises/{exercise_index}/state
- POST /units/{unit_id}/exercises/{exercise_index}/blocked
- POST /units/{unit_id}/exercises/{exercise_index}/corrected
- POST /units/{unit_id}/exercises/{exercise_index}/corrections
- DELETE /units/{unit_id}/exercises/{exercise_index}/corrections/{digest}
- GET /corrections/{digest}.png
- GET /health
"""

from fastapi import FastAPI, Body, Depends, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool
from starlette.requests import ClientDisconnect
from typing import List
import json
import logging
import os
import queue
import threading
import time
import uuid
from .database import create_db_and_tables, get_session
from . import services
from .auth import client_ip, get_current_student_id
from .config import settings
from .images import EncodedImageTooLarge, ImageError, ImageTooLarge, ImageUndecodable, normalize_image
from .schemas import CorrectionOut, ExerciseOut, ExerciseStudentStateIn, LogInIn, StudentOut, UnitOut
from .storage import BlobWriteError, CorrectionAlreadyExists, CorrectionStore, StoreError
from .utils.rate_limit import InMemoryRateLimiter

app = FastAPI(title="Exercise Tracker API")
logger = logging.getLogger("tracker.api")
if not logger.handlers:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))

_login_limiter = InMemoryRateLimiter(settings.LOGIN_RATE_LIMIT_PER_MIN, window_seconds=60)
_store = CorrectionStore(settings.CORRECTIONS_PATH)

# Each domain error maps to exactly one status code.
ERROR_STATUS = {
    ImageUndecodable: 400,
    ImageTooLarge: 400,
    EncodedImageTooLarge: 413,
    CorrectionAlreadyExists: 409,
    BlobWriteError: 500,
    services.UnitNotFound: 404,
    services.ExerciseNotFound: 404,
    services.MalformedBody: 400,
    services.BodyTooLarge: 413,
    services.UnknownStudent: 401,
}

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()


def get_store() -> CorrectionStore:
    """FastAPI dependency returning the process wide correction store."""
    return _store


def _log_payload(request: Request, **extra) -> str:
    payload = {
        "request_id": getattr(request.state, "request_id", ""),
        "path": request.url.path,
        "method": request.method,
        "client": client_ip(request),
    }
    payload.update(extra)
    return json.dumps(payload, ensure_ascii=True)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        # A failing request must never take the server down with it.
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception("request_failed %s", _log_payload(request, duration_ms=elapsed_ms))
        response = JSONResponse(status_code=500, content=None)
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    logger.info("request_done %s", _log_payload(request, status_code=response.status_code, duration_ms=elapsed_ms))
    return response


async def _domain_error_handler(request: Request, exc: Exception):
    status = ERROR_STATUS[type(exc)]
    if status >= 500:
        logger.error("request_error %s", _log_payload(request, error=repr(exc)), exc_info=exc)
        return JSONResponse(status_code=status, content=None)
    logger.warning("request_rejected %s", _log_payload(request, status_code=status, error=str(exc)))
    return JSONResponse(status_code=status, content={"detail": str(exc)})


for _family in (ImageError, StoreError, services.NotFound, services.BadRequest, services.UnknownStudent):
    app.add_exception_handler(_family, _domain_error_handler)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Unparseable path segments are unknown resources; anything else is a bad request."""
    status = 404 if any(err.get("loc", ("",))[0] == "path" for err in exc.errors()) else 400
    logger.warning("request_invalid %s", _log_payload(request, status_code=status))
    return JSONResponse(status_code=status, content={"detail": "invalid request"})


@app.exception_handler(ClientDisconnect)
async def client_disconnect_handler(request: Request, exc: ClientDisconnect):
    logger.info("client_disconnected %s", _log_payload(request))
    return Response(status_code=400)


async def _read_body(request: Request, limit: int) -> bytes:
    """Read the request body, refusing to buffer more than `limit` bytes."""
    declared = request.headers.get("content-length")
    if declared is not None:
        try:
            declared_len = int(declared)
        except ValueError:
            raise services.MalformedBody("invalid Content-Length")
        if declared_len > limit:
            raise services.BodyTooLarge(f"body of {declared_len} bytes exceeds {limit}")
    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            raise services.BodyTooLarge(f"body exceeds {limit} bytes")
    return bytes(body)


def _normalize_with_timeout(payload: bytes, content_type: str | None, timeout_s: float) -> bytes:
    """Normalize in a daemon thread and return promptly on timeout.

    The caller runs this in the threadpool, so a picture that times out
    keeps two threads busy (the waiting pool worker until the timeout, the
    daemon thread until Pillow finishes) and its result is discarded.
    Threads cannot be interrupted, so the timeout bounds the response, not
    the CPU spent.
    """
    out: queue.Queue = queue.Queue(maxsize=1)

    def _work():
        try:
            out.put((True, normalize_image(payload, content_type)))
        except Exception as exc:
            out.put((False, exc))

    t = threading.Thread(target=_work, daemon=True)
    t.start()
    try:
        ok, value = out.get(timeout=timeout_s)
    except queue.Empty as exc:
        raise TimeoutError(f"picture processing timed out after {timeout_s:.0f}s") from exc
    if ok:
        return value
    raise value


@app.post('/log-in')
async def log_in(request: Request, db: Session = Depends(get_session)):
    """Exchange a username and the class password for a bearer token.

    The body is capped at `MAX_LOGIN_BODY_BYTES`; the response is the
    token as a JSON string.
    """
    ip = client_ip(request)
    retry_after = _login_limiter.retry_after(ip)
    if retry_after:
        raise HTTPException(
            status_code=429,
            detail=f"too many failed attempts; retry after {retry_after}s",
            headers={"Retry-After": str(retry_after)},
        )
    body = await _read_body(request, settings.MAX_LOGIN_BODY_BYTES)
    try:
        payload = LogInIn.model_validate_json(body)
    except ValidationError as exc:
        raise services.MalformedBody("log in body must be {username, password}") from exc
    auth = services.AuthService(db, settings.APP_PASSWD, settings.APP_SECRET)
    token = await run_in_threadpool(auth.log_in, payload.username, payload.password)
    if token is None:
        _login_limiter.record_failure(ip)
        logger.warning("login_failed %s", _log_payload(request, username=payload.username))
        raise HTTPException(status_code=401, detail='invalid credentials')
    _login_limiter.reset(ip)
    return token


@app.get('/students/me', response_model=StudentOut)
def me(db: Session = Depends(get_session), student_id: int = Depends(get_current_student_id)):
    """Return the logged in student."""
    return services.ExerciseService(db).me(student_id)


@app.get('/units', response_model=List[UnitOut])
def list_units(db: Session = Depends(get_session), student_id: int = Depends(get_current_student_id)):
    return services.ExerciseService(db).list_units()


@app.get('/units/{unit_id}/exercises', response_model=List[ExerciseOut])
def unit_exercises(unit_id: int, db: Session = Depends(get_session), student_id: int = Depends(get_current_student_id)):
    """Return one entry per exercise of the unit with reservations, marks and correction digests."""
    return services.ExerciseService(db).unit_exercises(unit_id)


@app.post('/units/{unit_id}/exercises/{exercise_index}/state')
def change_exercise_state(
    unit_id: int,
    exercise_index: int,
    new_state: ExerciseStudentStateIn = Body(...),
    db: Session = Depends(get_session),
    student_id: int = Depends(get_current_student_id),
):
    """Reserve, present or release (`"none"`) an exercise for the caller."""
    services.ExerciseService(db).change_state(student_id, unit_id, exercise_index, new_state)
    return None


@app.post('/units/{unit_id}/exercises/{exercise_index}/blocked')
def mark_exercise_blocked(
    unit_id: int,
    exercise_index: int,
    blocked: bool = Body(...),
    db: Session = Depends(get_session),
    student_id: int = Depends(get_current_student_id),
):
    services.ExerciseService(db).mark_blocked(unit_id, exercise_index, blocked)
    return None


@app.post('/units/{unit_id}/exercises/{exercise_index}/corrected')
def mark_exercise_corrected(
    unit_id: int,
    exercise_index: int,
    corrected: bool = Body(...),
    db: Session = Depends(get_session),
    student_id: int = Depends(get_current_student_id),
):
    """Mark the exercise as corrected by the teacher for the caller's group."""
    services.ExerciseService(db).mark_corrected(student_id, unit_id, exercise_index, corrected)
    return None


@app.post('/units/{unit_id}/exercises/{exercise_index}/corrections', status_code=201, response_model=CorrectionOut)
async def submit_correction(
    request: Request,
    unit_id: int,
    exercise_index: int,
    db: Session = Depends(get_session),
    store: CorrectionStore = Depends(get_store),
    student_id: int = Depends(get_current_student_id),
):
    """Store a photographed correction for an exercise.

    The raw body is the picture; `Content-Type` may name its format.
    The coordinate is checked before the body is read, the body is
    capped before decoding and the picture is normalized to PNG before
    it is stored under its digest. Submitting the same picture twice for
    the same exercise answers 409.
    """
    svc = services.CorrectionService(db, store)
    await run_in_threadpool(svc.check_coordinates, unit_id, exercise_index)
    payload = await _read_body(request, settings.MAX_PICTURE_BYTES)
    try:
        png = await run_in_threadpool(
            _normalize_with_timeout, payload, request.headers.get("content-type"), settings.NORMALIZE_TIMEOUT_SECONDS,
        )
    except TimeoutError as exc:
        raise HTTPException(status_code=504, detail=str(exc))
    stored = await run_in_threadpool(svc.store_picture, unit_id, exercise_index, student_id, png)
    return CorrectionOut(digest=stored.digest)


@app.delete('/units/{unit_id}/exercises/{exercise_index}/corrections/{digest}')
def delete_correction(
    unit_id: int,
    exercise_index: int,
    digest: str,
    db: Session = Depends(get_session),
    store: CorrectionStore = Depends(get_store),
    student_id: int = Depends(get_current_student_id),
):
    """Remove the reference to a correction picture.

    Removing a reference that does not exist still succeeds. The picture
    itself stays on disk.
    """
    services.CorrectionService(db, store).delete(unit_id, exercise_index, digest)
    return None


@app.get('/corrections/{digest}.png')
def correction_picture(digest: str, store: CorrectionStore = Depends(get_store)):
    """Serve a stored correction picture by digest."""
    path = store.open_blob(digest)
    if path is None:
        raise HTTPException(status_code=404, detail='picture not found')
    return FileResponse(path, media_type="image/png", headers={"Cache-Control": "public, max-age=31536000, immutable"})


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}
