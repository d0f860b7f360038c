import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import IntegrityError

from filyo.db.session import init_db
from filyo.core.config import settings
from filyo.core.errors import FilyoError
from filyo.api.v1 import auth, users, files, shares, upload_requests, admin, settings as app_settings

__version__ = "1.0.0"

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("filyo")

app = FastAPI(title=settings.app_name, version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origin.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FilyoError)
async def filyo_error_handler(request: Request, exc: FilyoError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    # unique email or token lost a race with a concurrent insert
    logger.warning("%s %s hit a constraint: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(status_code=409, content={"detail": "Conflicting data, please retry"})


app.include_router(auth.router, prefix="/api/v1/auth", tags=["auth"])
app.include_router(users.router, prefix="/api/v1/users", tags=["users"])
app.include_router(files.router, prefix="/api/v1/files", tags=["files"])
app.include_router(shares.router, prefix="/api/v1/shares", tags=["shares"])
app.include_router(upload_requests.router, prefix="/api/v1/upload-requests", tags=["upload-requests"])
app.include_router(admin.router, prefix="/api/v1/admin", tags=["admin"])
app.include_router(app_settings.router, prefix="/api/v1/settings", tags=["settings"])

# only avatars and logos are public; shared blobs go through the share gates
for _subdir in ("avatars", "logos"):
    _static_dir = os.path.join(settings.upload_dir, _subdir)
    os.makedirs(_static_dir, exist_ok=True)
    app.mount(
        f"/uploads/{_subdir}",
        StaticFiles(directory=_static_dir),
        name=_subdir,
    )


@app.on_event("startup")
async def startup_event():
    os.makedirs(settings.upload_dir, exist_ok=True)
    await init_db()
    logger.info("Filyo %s started, storing files in %s", __version__, settings.upload_dir)


@app.get("/health")
async def health():
    return {"status": "ok", "version": __version__}
