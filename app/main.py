import logging
from contextlib import asynccontextmanager
from pathlib import Path
from urllib.parse import urlencode

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import settings
from app.routers import admin, auth, notifications, payments, public, resident
from app.security.csrf import install_csrf_cookie_middleware
from app.security.headers import install_security_headers
from app.security.sessions import install_auth_session_middleware
from app.services.notification_service import register_change_listeners, unregister_change_listeners

logger = logging.getLogger(__name__)

ROBOTS_ALLOWED = ('/', '/catalogue', '/units/', '/facilities', '/gallery', '/contact')
ROBOTS_DISALLOWED = ('/resident/', '/admin/', '/payment/', '/notifications', '/login', '/register', '/forgot-password', '/reset-password', '/verify-email')


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )


configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    register_change_listeners()
    yield
    unregister_change_listeners()


app = FastAPI(title=settings.app_name, lifespan=lifespan)

TEMPLATE_DIR = Path(__file__).resolve().parent / 'templates'
app.state.templates = Jinja2Templates(directory=str(TEMPLATE_DIR))


def _csrf_token(request: Request) -> str:
    return getattr(request.state, 'csrf_token', '')


def _money(value) -> str:
    if value is None:
        return '-'
    return f'Rp {value:,.0f}'.replace(',', '.')


app.state.templates.env.globals['csrf_token'] = _csrf_token
app.state.templates.env.globals['app_name'] = settings.app_name
app.state.templates.env.filters['money'] = _money

install_security_headers(app)
install_csrf_cookie_middleware(app)
install_auth_session_middleware(app)

app.include_router(public.router)
app.include_router(auth.router)
app.include_router(resident.router)
app.include_router(admin.router)
app.include_router(payments.router)
app.include_router(notifications.router)

def _wants_json(request: Request) -> bool:
    accept = request.headers.get('accept', '')
    return 'application/json' in accept and 'text/html' not in accept


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if _wants_json(request) or request.url.path.startswith('/notifications') or request.url.path == '/payment/notification':
        return JSONResponse({'detail': exc.detail}, status_code=exc.status_code)
    if exc.status_code == 401:
        return RedirectResponse(f'/login?{urlencode({"next": request.url.path})}', status_code=303)
    if exc.status_code >= 500:
        logger.error('HTTP %s on %s: %s', exc.status_code, request.url.path, exc.detail)
    template = '404.html' if exc.status_code == 404 else 'error.html'
    return app.state.templates.TemplateResponse(
        template,
        {
            'request': request,
            'principal': getattr(request.state, 'principal', None),
            'status_code': exc.status_code,
            'detail': exc.detail,
            'back_url': request.headers.get('referer'),
        },
        status_code=exc.status_code,
    )


@app.get('/robots.txt', response_class=PlainTextResponse)
def robots_txt() -> str:
    lines = ['User-agent: *']
    lines.extend(f'Allow: {path}' for path in ROBOTS_ALLOWED)
    lines.extend(f'Disallow: {path}' for path in ROBOTS_DISALLOWED)
    return '\n'.join(lines) + '\n'


@app.get('/healthz', response_class=PlainTextResponse)
def healthz() -> str:
    return 'ok'
