from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .db import Base, SessionLocal, engine
from .cleanup import purge_expired
from .errors import TutorError
from .settings import settings
from .routers import problems
import asyncio
import logging

logging.basicConfig(
	level=getattr(logging, settings.log_level.upper(), logging.INFO),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Math Problem Tutor API")
app.include_router(problems.router)


@app.exception_handler(TutorError)
async def tutor_error_handler(request: Request, exc: TutorError):
	if exc.status_code >= 500:
		logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
	return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
	# The rejected input is not echoed: it may be NaN/Infinity, which JSON cannot carry
	errors = [{k: v for k, v in err.items() if k not in ("input", "ctx")} for err in exc.errors()]
	return JSONResponse(status_code=400, content={"detail": jsonable_encoder(errors)})


@app.get("/info")
def root():
	return {"status": "ok", "gemini_configured": bool(settings.gemini_api_key)}


@app.get("/health")
def health():
	return {"status": "ok"}


def _purge_once() -> None:
	try:
		with SessionLocal() as db:
			purge_expired(db, settings.retention_days)
	except Exception:
		logger.exception("Retention purge failed")


async def _cleanup_watcher():
	# Startup already ran one purge; repeat daily
	while True:
		await asyncio.sleep(24 * 60 * 60)
		_purge_once()


@app.on_event("startup")
async def startup_event():
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
	if settings.retention_days > 0:
		_purge_once()
		asyncio.create_task(_cleanup_watcher())
