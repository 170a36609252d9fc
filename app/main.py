from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from app.api import articles, auth, galleries, images, users
from app.core.config import get_settings, logger
from app.core.database import init_db


settings = get_settings()

app = FastAPI(title=settings.APP_NAME)


origins = [
    origin.strip()
    for origin in settings.BACKEND_CORS_ORIGINS.split(",")
    if origin.strip()
] or ["*"]

# wildcard origins cannot be combined with allow_credentials=True
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials="*" not in origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


init_db()


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"[app] unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": settings.MESSAGES.INTERNAL_ERROR})


app.include_router(auth.router)
app.include_router(users.router)
app.include_router(images.router)
app.include_router(galleries.router)
app.include_router(articles.router)

app.mount(settings.MEDIA_URL, StaticFiles(directory=settings.STORAGE_ROOT, check_dir=False), name="media")
