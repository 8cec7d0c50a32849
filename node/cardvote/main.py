import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import kv
from .activity import router as activity_router
from .config import LOG_LEVEL, NODE_ID
from .errors import AlreadyActive, BadRequest, CardVoteError
from .sessions import router as sessions_router

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: connect the shared store unless one was injected
    opened = kv.get_kv() is None
    if opened:
        kv.connect()
    yield
    if opened:
        await kv.close()

app = FastAPI(
    title=f"Card Vote Node ({NODE_ID})",
    lifespan=lifespan
)

app.include_router(activity_router)
app.include_router(sessions_router)


@app.exception_handler(CardVoteError)
async def card_vote_error(request: Request, exc: CardVoteError):
    if isinstance(exc, AlreadyActive):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "This account is logged in on another device.", "code": exc.wire_code},
        )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.reason})


@app.exception_handler(RequestValidationError)
async def bad_request(request: Request, exc: RequestValidationError):
    logger.debug("rejected %s %s: %s", request.method, request.url.path, exc.errors())
    return JSONResponse(status_code=BadRequest.status_code, content={"error": BadRequest.reason})


@app.get("/health")
def health():
    return {"ok": True, "node": NODE_ID, "remote": kv.get_kv() is not None}


if __name__ == "__main__":
    import uvicorn
    from .config import PORT
    uvicorn.run("cardvote.main:app", host="0.0.0.0", port=PORT, log_level="info")
