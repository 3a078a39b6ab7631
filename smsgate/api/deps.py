from __future__ import annotations

import secrets

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from smsgate.core.config import settings
from smsgate.core.scheduler import get_engine
from smsgate.services.dispatch_engine import DispatchEngine

basic_auth = HTTPBasic()


def require_admin(credentials: HTTPBasicCredentials = Depends(basic_auth)) -> str:
    login_ok = secrets.compare_digest(credentials.username.encode(), settings.admin_login.encode())
    password_ok = secrets.compare_digest(
        credentials.password.encode(), settings.admin_password.encode()
    )
    if not (login_ok and password_ok):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Basic"},
        )
    return credentials.username


def get_dispatch_engine() -> DispatchEngine:
    return get_engine()
