# File: schemagen/plugins/builtin/jwt_service.py
"""
SchemaGen - JWT Service Plugin
================================
Issues and verifies JSON Web Tokens for the generated API.

Requires a ``User`` entity.  An optional ``RefreshToken`` entity makes
refresh tokens persistent; without it they are held in process memory.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from pydantic import Field

from schemagen.context import GenerationContext
from schemagen.plugins.base import (
    DependencyRequirements,
    EntityRequirements,
    EnvRequirements,
    EnvVarDescriptor,
    FeaturePlugin,
    HealthCheck,
    HealthCheckSection,
    MiddlewareDescriptor,
    PluginOptions,
    PluginOutput,
    PluginRequirements,
    RouteDescriptor,
)

logger: logging.Logger = logging.getLogger("schemagen.plugins.builtin.jwt_service")

# Shared with google-auth: both plugins emit these verbatim so the merge
# keeps a single copy.
AUTH_PACKAGE_INIT: str = '"""Authentication package generated by SchemaGen."""\n'
JOSE_DEPENDENCY: Dict[str, str] = {"python-jose[cryptography]": ">=3.3"}

SECRET_SCRIPT: str = "python -c \"import secrets; print(secrets.token_urlsafe(48))\""

_INDENT: str = "    "


class JWTServiceOptions(PluginOptions):
    access_token_minutes: int = Field(default=15, ge=1, le=24 * 60)
    refresh_token_days: int = Field(default=7, ge=1, le=365)
    enable_refresh_tokens: bool = Field(default=True)
    issuer: str = Field(default="schemagen-api", min_length=1)
    algorithm: str = Field(default="HS256", pattern=r"^(HS|RS|ES)(256|384|512)$")


class JWTServicePlugin(FeaturePlugin):
    id = "jwt-service"
    name = "JWT Service"
    version = "1.0.0"
    description = "JWT issuing, verification and refresh-token rotation."
    requirements = PluginRequirements(
        entities=EntityRequirements(required=["User"], optional=["RefreshToken"]),
        env=EnvRequirements(
            required=["JWT_SECRET"],
            optional=["JWT_ISSUER", "JWT_ACCESS_EXPIRY_MINUTES"],
            descriptions={
                "JWT_SECRET": "Secret key used to sign access tokens.",
                "JWT_ISSUER": "Value of the 'iss' claim.",
                "JWT_ACCESS_EXPIRY_MINUTES": "Access-token lifetime in minutes.",
            },
        ),
        dependencies=DependencyRequirements(
            runtime={**JOSE_DEPENDENCY, "passlib[bcrypt]": ">=1.7"},
        ),
        fallbacks={
            "RefreshToken": "refresh tokens are kept in memory and lost on restart",
        },
    )
    Options = JWTServiceOptions

    # -----------------------------------------------------------------
    # Generation
    # -----------------------------------------------------------------

    def generate(self, context: GenerationContext) -> PluginOutput:
        opts: JWTServiceOptions = self.options  # type: ignore[assignment]
        persistent: bool = self.has_entity(context, "RefreshToken")

        files: Dict[str, str] = {
            "auth/__init__.py": AUTH_PACKAGE_INIT,
            "auth/jwt_utils.py": self._jwt_utils(opts),
            "auth/dependencies.py": self._dependencies(),
            "auth/jwt_routes.py": self._routes(opts),
        }
        routes: List[RouteDescriptor] = [
            RouteDescriptor(
                method="POST",
                path="/auth/login",
                handler="auth.jwt_routes:login",
                description="Exchange credentials for a token pair.",
            ),
            RouteDescriptor(
                method="GET",
                path="/auth/me",
                handler="auth.jwt_routes:me",
                description="Return the authenticated user.",
                middleware=("require_auth",),
            ),
        ]
        if opts.enable_refresh_tokens:
            files["auth/token_store.py"] = self._token_store(persistent)
            routes.append(
                RouteDescriptor(
                    method="POST",
                    path="/auth/refresh",
                    handler="auth.jwt_routes:refresh",
                    description="Rotate a refresh token.",
                )
            )

        env_vars: Dict[str, EnvVarDescriptor] = self.declared_env_vars()
        env_vars["JWT_ISSUER"] = env_vars["JWT_ISSUER"].model_copy(
            update={"default": opts.issuer}
        )
        env_vars["JWT_ACCESS_EXPIRY_MINUTES"] = env_vars[
            "JWT_ACCESS_EXPIRY_MINUTES"
        ].model_copy(update={"default": str(opts.access_token_minutes)})

        logger.debug(
            "jwt-service: refresh=%s persistent=%s", opts.enable_refresh_tokens, persistent
        )
        return PluginOutput(
            files=files,
            routes=routes,
            middleware=[
                MiddlewareDescriptor(
                    name="require_auth", import_path="auth.dependencies", global_=False
                ),
                MiddlewareDescriptor(
                    name="optional_auth", import_path="auth.dependencies", global_=False
                ),
            ],
            env_vars=env_vars,
            dependencies=dict(self.requirements.dependencies.runtime),
            scripts={"jwt-secret": SECRET_SCRIPT},
        )

    def health_check(self, context: GenerationContext) -> Optional[HealthCheckSection]:
        opts: JWTServiceOptions = self.options  # type: ignore[assignment]
        checks: List[HealthCheck] = [
            HealthCheck(
                id="jwt-secret",
                name="JWT secret configured",
                description="JWT_SECRET is set in the environment.",
                requires_server=False,
            ),
            HealthCheck(
                id="jwt-me",
                name="Token verification",
                description="An unauthenticated call to /auth/me is rejected with 401.",
                endpoint="/auth/me",
            ),
        ]
        if opts.enable_refresh_tokens:
            checks.append(
                HealthCheck(
                    id="jwt-refresh",
                    name="Refresh endpoint",
                    description="/auth/refresh rejects an unknown refresh token.",
                    endpoint="/auth/refresh",
                )
            )
        return HealthCheckSection(id="jwt-service", title="JWT Service", checks=tuple(checks))

    # -----------------------------------------------------------------
    # Templates
    # -----------------------------------------------------------------

    def _jwt_utils(self, opts: JWTServiceOptions) -> str:
        lines: List[str] = self.module_header("JWT encoding and verification helpers.")
        lines.extend(
            [
                "import os",
                "from datetime import datetime, timedelta, timezone",
                "from typing import Any, Dict",
                "",
                "from jose import JWTError, jwt",
                "",
                f'ALGORITHM = "{opts.algorithm}"',
                'SECRET_KEY = os.environ["JWT_SECRET"]',
                f'ISSUER = os.environ.get("JWT_ISSUER", "{opts.issuer}")',
                "ACCESS_EXPIRY = timedelta(",
                f'{_INDENT}minutes=int(os.environ.get("JWT_ACCESS_EXPIRY_MINUTES", '
                f'"{opts.access_token_minutes}"))',
                ")",
                f"REFRESH_EXPIRY = timedelta(days={opts.refresh_token_days})",
                "",
                "",
                "def create_access_token(subject: str, extra: Dict[str, Any] | None = None) -> str:",
                f"{_INDENT}now = datetime.now(timezone.utc)",
                f'{_INDENT}claims: Dict[str, Any] = {{"sub": subject, "iss": ISSUER, '
                f'"iat": now, "exp": now + ACCESS_EXPIRY}}',
                f"{_INDENT}claims.update(extra or {{}})",
                f"{_INDENT}return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)",
                "",
                "",
                "def decode_token(token: str) -> Dict[str, Any]:",
                f'{_INDENT}"""Raise ``JWTError`` when the token is invalid or expired."""',
                f"{_INDENT}return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM], issuer=ISSUER)",
                "",
                "",
                '__all__ = ["JWTError", "create_access_token", "decode_token", "REFRESH_EXPIRY"]',
            ]
        )
        return "\n".join(lines) + "\n"

    def _dependencies(self) -> str:
        lines: List[str] = self.module_header("FastAPI dependencies guarding routes with JWTs.")
        lines.extend(
            [
                "from typing import Any, Dict, Optional",
                "",
                "from fastapi import Depends, HTTPException, status",
                "from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer",
                "",
                "from .jwt_utils import JWTError, decode_token",
                "",
                "_bearer = HTTPBearer(auto_error=False)",
                "",
                "",
                "def optional_auth(",
                f"{_INDENT}credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),",
                ") -> Optional[Dict[str, Any]]:",
                f"{_INDENT}if credentials is None:",
                f"{_INDENT * 2}return None",
                f"{_INDENT}try:",
                f"{_INDENT * 2}return decode_token(credentials.credentials)",
                f"{_INDENT}except JWTError:",
                f"{_INDENT * 2}return None",
                "",
                "",
                "def require_auth(",
                f"{_INDENT}claims: Optional[Dict[str, Any]] = Depends(optional_auth),",
                ") -> Dict[str, Any]:",
                f"{_INDENT}if claims is None:",
                f"{_INDENT * 2}raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)",
                f"{_INDENT}return claims",
            ]
        )
        return "\n".join(lines) + "\n"

    def _token_store(self, persistent: bool) -> str:
        lines: List[str] = self.module_header("Refresh-token storage.")
        if persistent:
            lines.extend(
                [
                    "from typing import Optional",
                    "",
                    "from ..models.refresh_token import RefreshToken",
                    "",
                    "",
                    "async def save(session, token: str, user_id: str) -> None:",
                    f"{_INDENT}session.add(RefreshToken(token=token, userId=user_id))",
                    f"{_INDENT}await session.commit()",
                    "",
                    "",
                    "async def pop(session, token: str) -> Optional[str]:",
                    f"{_INDENT}row = await session.get(RefreshToken, token)",
                    f"{_INDENT}if row is None:",
                    f"{_INDENT * 2}return None",
                    f"{_INDENT}await session.delete(row)",
                    f"{_INDENT}await session.commit()",
                    f"{_INDENT}return row.userId",
                ]
            )
        else:
            lines.extend(
                [
                    "from typing import Dict, Optional",
                    "",
                    "# In-memory store: tokens are lost on restart.",
                    "_TOKENS: Dict[str, str] = {}",
                    "",
                    "",
                    "async def save(session, token: str, user_id: str) -> None:",
                    f"{_INDENT}_TOKENS[token] = user_id",
                    "",
                    "",
                    "async def pop(session, token: str) -> Optional[str]:",
                    f"{_INDENT}return _TOKENS.pop(token, None)",
                ]
            )
        return "\n".join(lines) + "\n"

    def _routes(self, opts: JWTServiceOptions) -> str:
        lines: List[str] = self.module_header("Login, refresh and identity endpoints.")
        lines.extend(
            [
                "from typing import Any, Dict",
                "",
                "from fastapi import APIRouter, Depends",
                "",
                "from .dependencies import require_auth",
                "from .jwt_utils import create_access_token",
                "",
                'router = APIRouter(prefix="/auth", tags=["auth"])',
                "",
                "",
                '@router.post("/login")',
                "async def login(payload: Dict[str, str]) -> Dict[str, str]:",
                f'{_INDENT}token = create_access_token(payload["username"])',
                f'{_INDENT}return {{"access_token": token, "token_type": "bearer"}}',
                "",
                "",
                '@router.get("/me")',
                "async def me(claims: Dict[str, Any] = Depends(require_auth)) -> Dict[str, Any]:",
                f"{_INDENT}return claims",
            ]
        )
        if opts.enable_refresh_tokens:
            lines.extend(
                [
                    "",
                    "",
                    '@router.post("/refresh")',
                    "async def refresh(payload: Dict[str, str]) -> Dict[str, str]:",
                    f"{_INDENT}from . import token_store",
                    "",
                    f'{_INDENT}user_id = await token_store.pop(None, payload["refresh_token"])',
                    f"{_INDENT}if user_id is None:",
                    f"{_INDENT * 2}from fastapi import HTTPException",
                    "",
                    f"{_INDENT * 2}raise HTTPException(status_code=401)",
                    f'{_INDENT}return {{"access_token": create_access_token(user_id), '
                    f'"token_type": "bearer"}}',
                ]
            )
        return "\n".join(lines) + "\n"


__all__: List[str] = [
    "AUTH_PACKAGE_INIT",
    "JOSE_DEPENDENCY",
    "JWTServiceOptions",
    "JWTServicePlugin",
    "SECRET_SCRIPT",
]
