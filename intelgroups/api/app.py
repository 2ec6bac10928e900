"""
FastAPI app
"""

from importlib.metadata import version

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .admin import admin_routes
from .dependencies import SETTINGS, logger
from .errors import add_exception_handlers
from .groups import group_app
from .messages import message_app
from .premium import premium_app

settings = SETTINGS()


async def lifespan(app: FastAPI):
    app.settings = settings

    log = logger().bind(
        store_type=settings.store_type,
        ledger_type=settings.ledger_type,
        groups_file=settings.groups_file,
        premium_file=settings.premium_file,
    )

    if settings.store_type == "github" and not settings.github_repo:
        raise RuntimeError("A GitHub repository is required for the github store.")

    if settings.ledger_type == "http" and not settings.ledger_url:
        raise RuntimeError("A ledger URL is required for the http ledger.")

    if not settings.admin_password:
        await log.awarning("app.no_admin_password")

    if not settings.bot_token:
        await log.awarning("app.notifications_disabled")

    await log.ainfo("app.started")

    yield


app = FastAPI(
    lifespan=lifespan,
    title="Intel Groups API",
    summary=(
        "Group chats, voice notes and premium membership, stored in a versioned "
        "document store."
    ),
    version=version("intelgroups"),
)

app = add_exception_handlers(app)

app.add_middleware(
    CORSMiddleware, allow_origins=["*"], allow_methods=["GET", "POST", "DELETE"]
)

app.include_router(group_app, prefix="/api/groups")
app.include_router(message_app, prefix="/api")
app.include_router(premium_app)
app.include_router(admin_routes, prefix="/admin")

if settings.static_directory is not None:
    app.mount(
        "/",
        StaticFiles(directory=settings.static_directory, html=True),
        name="static",
    )
