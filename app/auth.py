from dataclasses import dataclass
from enum import Enum

from fastapi import Depends, HTTPException, Request, status


class Role(str, Enum):
    ADMIN = "ADMIN"
    RESIDENT = "RESIDENT"
    GUEST = "GUEST"


@dataclass
class Principal:
    id: int
    email: str
    username: str
    full_name: str | None
    role: Role
    resident_id: int | None
    unit_id: int | None
    active: bool

    @property
    def display_name(self) -> str:
        return self.full_name or self.username


def get_optional_principal(request: Request) -> Principal | None:
    return getattr(request.state, "principal", None)


def get_current_principal(request: Request) -> Principal:
    principal = get_optional_principal(request)
    if not principal:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    if not principal.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    return principal


def require_role(*allowed: Role):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
        return principal

    return _dep


def assert_resident_scope(principal: Principal, target_resident_id: int) -> None:
    if principal.role == Role.ADMIN:
        return
    if principal.resident_id != target_resident_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)


def home_path_for(principal: Principal | None) -> str:
    if principal is None:
        return "/"
    if principal.role == Role.ADMIN:
        return "/admin/dashboard"
    if principal.role == Role.RESIDENT:
        return "/resident/dashboard"
    return "/catalogue"
