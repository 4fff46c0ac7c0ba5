from fastapi import Request
from fastapi.templating import Jinja2Templates


def get_templates(request: Request) -> Jinja2Templates:
    return request.app.state.templates


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def get_user_agent(request: Request) -> str | None:
    return request.headers.get('user-agent')


def safe_next_path(raw: str | None, default: str) -> str:
    value = (raw or '').strip()
    if not value.startswith('/') or value.startswith('//') or '\\' in value:
        return default
    return value
