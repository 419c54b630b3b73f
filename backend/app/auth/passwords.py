"""Password hashing for the built-in identity provider (passlib + bcrypt)."""

from passlib.context import CryptContext

MIN_PASSWORD_LENGTH = 8

_ctx = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(plain: str) -> str:
    return _ctx.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    return _ctx.verify(plain, hashed)


def check_password_strength(plain: str) -> str | None:
    """Return a complaint about the password, or None if acceptable."""
    if len(plain) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    if plain.strip() != plain:
        return "Password must not start or end with whitespace"
    return None
