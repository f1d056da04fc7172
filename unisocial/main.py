# unisocial/main.py

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from unisocial.common.websocket import manager
from unisocial.core.config import settings
from unisocial.core.exceptions import UniSocialError
from unisocial.core.logging_config import setup_logging

# Import every model so create_all knows all tables
from unisocial.db.session import engine
from unisocial.db.base_class import Base
from unisocial.models.user import User  # noqa: F401
from unisocial.models.friend import FriendEdge, FriendRequest  # noqa: F401
from unisocial.models.follow import Follow  # noqa: F401
from unisocial.models.block import UserBlock  # noqa: F401
from unisocial.models.conversation import Conversation, ConversationParticipant  # noqa: F401

from unisocial.routers import auth, friends, follows, realtime

setup_logging()
logger = logging.getLogger(__name__)

# Create missing tables on startup
Base.metadata.create_all(bind=engine)

app = FastAPI(title="UniSocial API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(UniSocialError)
async def unisocial_error_handler(request: Request, exc: UniSocialError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code, "details": exc.details},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    # malformed ids and bodies are bad input, not a separate status
    return JSONResponse(
        status_code=400,
        content={
            "detail": "Invalid request",
            "code": "INVALID_ARGUMENT",
            "details": {"errors": jsonable_encoder(exc.errors())},
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "code": "INTERNAL_ERROR", "details": {}},
    )


app.include_router(auth.router, prefix="/api/v1/auth", tags=["auth"])
app.include_router(friends.router, prefix="/api/v1/friends", tags=["friends"])
app.include_router(follows.router, prefix="/api/v1/users", tags=["follows"])
app.include_router(realtime.router, tags=["realtime"])


@app.get("/health")
def health():
    return {"ok": True, "online": len(manager.get_online_ids())}
