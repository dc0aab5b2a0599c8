import hashlib
import re
import secrets
from functools import lru_cache

import bcrypt

from locolive.config import settings

PASSWORD_MIN_LENGTH = 8
# bcrypt ignores everything past 72 bytes
PASSWORD_MAX_BYTES = 72


def password_policy_violations(password: str) -> list[str]:
    violations: list[str] = []
    if len(password) < PASSWORD_MIN_LENGTH:
        violations.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long.")
    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        violations.append(f"Password must be at most {PASSWORD_MAX_BYTES} bytes long.")
    if not re.search(r"[A-Z]", password):
        violations.append("Password must contain at least one uppercase letter.")
    if not re.search(r"[a-z]", password):
        violations.append("Password must contain at least one lowercase letter.")
    if not re.search(r"\d", password):
        violations.append("Password must contain at least one digit.")
    return violations


def get_password_hash(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    if not hashed_password:
        # keep the timing of a real comparison so absent accounts are not observable
        bcrypt.checkpw(plain_password.encode("utf-8")[:PASSWORD_MAX_BYTES], _dummy_hash())
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8")[:PASSWORD_MAX_BYTES], hashed_password.encode("utf-8"))
    except ValueError:
        return False


@lru_cache(maxsize=1)
def _dummy_hash() -> bytes:
    return bcrypt.hashpw(secrets.token_bytes(16), bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS))


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_reset_token() -> str:
    return secrets.token_urlsafe(32)
