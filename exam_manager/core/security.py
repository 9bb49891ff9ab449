"""
Operator authentication.

Tokens are issued by the main Exam Manager application; this service only
verifies them and reads the operator id ("sub") and role ("role") claims.
"""
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt.exceptions import PyJWTError

from exam_manager.core.config import AuthConfig, get_auth_config
from exam_manager.exceptions import AuthenticationException

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Operator:
    id: int
    role: str


def decode_operator_token(token: str, config: AuthConfig) -> Operator:
    """
    Verify a bearer token and extract the operator.

    Raises:
        AuthenticationException: signature, expiry or claims are invalid
    """
    try:
        payload = jwt.decode(
            token,
            config.jwt_secret,
            algorithms=[config.jwt_algorithm],
            options={"require": ["sub"]},
        )
    except PyJWTError as e:
        raise AuthenticationException(str(e))

    try:
        operator_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise AuthenticationException("subject claim is not an operator id")

    return Operator(id=operator_id, role=str(payload.get("role", "")))


async def get_current_operator(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    config: AuthConfig = Depends(get_auth_config),
) -> Operator:
    """Any authenticated operator"""
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return decode_operator_token(credentials.credentials, config)
    except AuthenticationException as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


async def require_admin(
    operator: Operator = Depends(get_current_operator),
    config: AuthConfig = Depends(get_auth_config),
) -> Operator:
    """Authenticated operator with the administrator role"""
    if operator.role != config.admin_role:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator role required"
        )
    return operator
