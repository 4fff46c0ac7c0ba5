from pwdlib import PasswordHash

from app.config import settings

password_hash = PasswordHash.recommended()


def hash_password(raw_password: str) -> str:
    return password_hash.hash(raw_password)


def verify_password(raw_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    return password_hash.verify(raw_password, hashed_password)


def password_problems(raw_password: str, confirm_password: str | None = None) -> list[str]:
    problems: list[str] = []
    if not raw_password:
        problems.append('Password is required')
    elif len(raw_password) < settings.password_min_length:
        problems.append(f'Password must be at least {settings.password_min_length} characters')
    if confirm_password is not None and raw_password != confirm_password:
        problems.append('Passwords do not match')
    return problems
