from fastapi import FastAPI, Request
from starlette.responses import Response


ROBOTS_HEADER = "noindex, nofollow, noarchive"
PRIVATE_PATH_PREFIXES = (
    "/resident",
    "/admin",
    "/notifications",
    "/payment",
    "/login",
    "/register",
    "/forgot-password",
    "/reset-password",
    "/verify-email",
)


def is_private_path(path: str) -> bool:
    return any(path == prefix or path.startswith(prefix + "/") for prefix in PRIVATE_PATH_PREFIXES)


def install_security_headers(app: FastAPI) -> None:
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "same-origin"
        if is_private_path(request.url.path):
            response.headers["X-Robots-Tag"] = ROBOTS_HEADER
            response.headers["Cache-Control"] = "no-store"
        return response
