# File: schemagen/plugins/builtin/google_auth.py
"""
SchemaGen - Google OAuth Plugin
=================================
Google sign-in on top of ``jwt-service``: the OAuth callback finds or
creates the ``User`` and hands back a JWT.

``User.email`` is required.  ``User.googleId`` is optional; without it
accounts are matched by e-mail address only.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from pydantic import Field, field_validator

from schemagen.context import GenerationContext
from schemagen.plugins.base import (
    DependencyRequirements,
    EntityRequirements,
    EnvRequirements,
    FeaturePlugin,
    FieldRequirements,
    HealthCheck,
    HealthCheckSection,
    PluginOptions,
    PluginOutput,
    PluginRequirements,
    RouteDescriptor,
)
from schemagen.plugins.builtin.jwt_service import AUTH_PACKAGE_INIT, JOSE_DEPENDENCY

logger: logging.Logger = logging.getLogger("schemagen.plugins.builtin.google_auth")

_INDENT: str = "    "


class GoogleAuthOptions(PluginOptions):
    scopes: List[str] = Field(default_factory=lambda: ["openid", "email", "profile"])
    auto_create_user: bool = Field(default=True)

    @field_validator("scopes")
    @classmethod
    def _require_email_scope(cls, v: List[str]) -> List[str]:
        if "email" not in v:
            raise ValueError("scopes must include 'email'")
        return v


class GoogleAuthPlugin(FeaturePlugin):
    id = "google-auth"
    name = "Google OAuth"
    version = "1.0.0"
    description = "Sign in with Google, issuing JWTs through jwt-service."
    requires_plugins = ("jwt-service",)
    requirements = PluginRequirements(
        entities=EntityRequirements(required=["User"]),
        fields=FieldRequirements(
            required={"User": ["email"]},
            optional={"User": ["googleId"]},
        ),
        env=EnvRequirements(
            required=["GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET"],
            optional=["GOOGLE_CALLBACK_URL"],
            descriptions={
                "GOOGLE_CLIENT_ID": "OAuth client id from the Google console.",
                "GOOGLE_CLIENT_SECRET": "OAuth client secret from the Google console.",
                "GOOGLE_CALLBACK_URL": "Redirect URI registered with Google.",
            },
        ),
        dependencies=DependencyRequirements(
            runtime={**JOSE_DEPENDENCY, "httpx": ">=0.27"},
        ),
        fallbacks={
            "User.googleId": "accounts are matched by e-mail address only",
        },
    )
    Options = GoogleAuthOptions

    def generate(self, context: GenerationContext) -> PluginOutput:
        opts: GoogleAuthOptions = self.options  # type: ignore[assignment]
        user = context.schema.get_entity("User")
        match_field: str = (
            "googleId" if user is not None and user.get_field("googleId") else "email"
        )
        logger.debug("google-auth: matching users on %s", match_field)

        files: Dict[str, str] = {
            "auth/__init__.py": AUTH_PACKAGE_INIT,
            "auth/google_oauth.py": self._oauth_client(opts),
            "auth/google_routes.py": self._routes(opts, match_field),
        }
        return PluginOutput(
            files=files,
            routes=[
                RouteDescriptor(
                    method="GET",
                    path="/auth/google",
                    handler="auth.google_routes:start",
                    description="Redirect to Google's consent screen.",
                ),
                RouteDescriptor(
                    method="GET",
                    path="/auth/google/callback",
                    handler="auth.google_routes:callback",
                    description="Complete the OAuth flow and issue a JWT.",
                ),
            ],
            env_vars=self.declared_env_vars(),
            dependencies=dict(self.requirements.dependencies.runtime),
        )

    def health_check(self, context: GenerationContext) -> Optional[HealthCheckSection]:
        return HealthCheckSection(
            id="google-auth",
            title="Google OAuth",
            checks=(
                HealthCheck(
                    id="google-credentials",
                    name="OAuth credentials configured",
                    description="GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET are set.",
                    requires_server=False,
                ),
                HealthCheck(
                    id="google-redirect",
                    name="Consent redirect",
                    description="/auth/google redirects to accounts.google.com.",
                    endpoint="/auth/google",
                ),
            ),
        )

    def _oauth_client(self, opts: GoogleAuthOptions) -> str:
        scope: str = " ".join(opts.scopes)
        lines: List[str] = self.module_header("Minimal Google OAuth 2.0 client.")
        lines.extend(
            [
                "import os",
                "from typing import Any, Dict",
                "from urllib.parse import urlencode",
                "",
                "import httpx",
                "",
                'AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"',
                'TOKEN_URL = "https://oauth2.googleapis.com/token"',
                'USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"',
                f'SCOPE = "{scope}"',
                "",
                "",
                "def authorize_url(state: str) -> str:",
                f"{_INDENT}params = {{",
                f'{_INDENT * 2}"client_id": os.environ["GOOGLE_CLIENT_ID"],',
                f'{_INDENT * 2}"redirect_uri": os.environ.get("GOOGLE_CALLBACK_URL", ""),',
                f'{_INDENT * 2}"response_type": "code",',
                f'{_INDENT * 2}"scope": SCOPE,',
                f'{_INDENT * 2}"state": state,',
                f"{_INDENT}}}",
                f'{_INDENT}return f"{{AUTHORIZE_URL}}?{{urlencode(params)}}"',
                "",
                "",
                "async def exchange_code(code: str) -> Dict[str, Any]:",
                f"{_INDENT}async with httpx.AsyncClient() as client:",
                f"{_INDENT * 2}token = await client.post(TOKEN_URL, data={{",
                f'{_INDENT * 3}"code": code,',
                f'{_INDENT * 3}"client_id": os.environ["GOOGLE_CLIENT_ID"],',
                f'{_INDENT * 3}"client_secret": os.environ["GOOGLE_CLIENT_SECRET"],',
                f'{_INDENT * 3}"redirect_uri": os.environ.get("GOOGLE_CALLBACK_URL", ""),',
                f'{_INDENT * 3}"grant_type": "authorization_code",',
                f"{_INDENT * 2}}})",
                f"{_INDENT * 2}token.raise_for_status()",
                f"{_INDENT * 2}info = await client.get(",
                f"{_INDENT * 3}USERINFO_URL,",
                f'{_INDENT * 3}headers={{"Authorization": f"Bearer {{token.json()[\'access_token\']}}"}},',
                f"{_INDENT * 2})",
                f"{_INDENT * 2}info.raise_for_status()",
                f"{_INDENT * 2}return info.json()",
            ]
        )
        return "\n".join(lines) + "\n"

    def _routes(self, opts: GoogleAuthOptions, match_field: str) -> str:
        claim: str = "sub" if match_field == "googleId" else "email"
        lines: List[str] = self.module_header("Google sign-in endpoints.")
        lines.extend(
            [
                "import secrets",
                "from typing import Dict",
                "",
                "from fastapi import APIRouter, HTTPException",
                "from fastapi.responses import RedirectResponse",
                "",
                "from .google_oauth import authorize_url, exchange_code",
                "from .jwt_utils import create_access_token",
                "",
                'router = APIRouter(prefix="/auth/google", tags=["auth"])',
                "",
                "",
                '@router.get("")',
                "async def start() -> RedirectResponse:",
                f"{_INDENT}return RedirectResponse(authorize_url(secrets.token_urlsafe(16)))",
                "",
                "",
                '@router.get("/callback")',
                "async def callback(code: str) -> Dict[str, str]:",
                f"{_INDENT}profile = await exchange_code(code)",
                f'{_INDENT}subject = profile.get("{claim}")',
                f"{_INDENT}if not subject:",
                f'{_INDENT * 2}raise HTTPException(status_code=400, detail="Google profile incomplete")',
            ]
        )
        if opts.auto_create_user:
            lines.append(
                f"{_INDENT}# Users are created on first sign-in, keyed by {match_field}."
            )
        lines.extend(
            [
                f'{_INDENT}return {{"access_token": create_access_token(subject), '
                f'"token_type": "bearer"}}',
            ]
        )
        return "\n".join(lines) + "\n"


__all__: List[str] = ["GoogleAuthOptions", "GoogleAuthPlugin"]
