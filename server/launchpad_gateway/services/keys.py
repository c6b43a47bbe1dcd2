"""Job keys, secrets, access keys and login codes."""

from __future__ import annotations

import hashlib
import hmac
import secrets
import uuid


def new_job_key() -> str:
    return uuid.uuid4().hex


def new_task_key() -> str:
    return uuid.uuid4().hex


def new_secret() -> str:
    return secrets.token_hex(32)


def generate_access_key(job_key: str, secret: str) -> str:
    """Hex HMAC-SHA256 of the job key under the job secret."""
    return hmac.new(secret.encode(), job_key.encode(), hashlib.sha256).hexdigest()


def verify_access_key(job_key: str, access_key: str, secret: str) -> bool:
    return hmac.compare_digest(generate_access_key(job_key, secret), access_key or "")


def generate_pin_code() -> str:
    """A random 4-digit code, 1000-9999."""
    return str(1000 + secrets.randbelow(9000))
