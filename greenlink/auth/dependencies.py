"""Authentication dependencies: bearer principals, roles and the device key."""

from __future__ import annotations

import hmac
import re
from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from greenlink.auth.jwt import AuthError, decode_token
from greenlink.config import get_settings
from greenlink.models.enums import UserRoleEnum
from greenlink.services.state_mutator import Actor

bearer_scheme = HTTPBearer(auto_error=False)

_GREENHOUSE_PATH = re.compile(r"/api/v1/greenhouses/([^/]+)(?:/|$)")


@dataclass(frozen=True, slots=True)
class AuthPrincipal:
	user_id: str
	username: str
	role: UserRoleEnum

	def as_actor(self) -> Actor:
		return Actor(user_id=self.user_id, username=self.username)


def _raise_auth(exc: AuthError) -> HTTPException:
	return HTTPException(
		status_code=exc.status_code,
		detail={"error": exc.code, "message": exc.detail},
	)


def principal_from_token(token: str) -> AuthPrincipal:
	"""Decode a bearer token into the (user id, username, role) triple."""
	payload = decode_token(token)
	try:
		role = UserRoleEnum(str(payload.get("role", UserRoleEnum.viewer.value)))
	except ValueError as exc:
		raise AuthError(code="token_invalid", detail="Token role is invalid") from exc
	username = payload.get("username")
	return AuthPrincipal(
		user_id=str(payload["sub"]),
		username=str(username) if username else str(payload["sub"]),
		role=role,
	)


def authenticate_socket_token(token: str | None) -> AuthPrincipal:
	if token is None or not token.strip():
		raise AuthError(code="auth_required", detail="Socket token is required")
	return principal_from_token(token.strip())


def extract_request_greenhouse_id(request: Request) -> str | None:
	token = request.path_params.get("greenhouse_id")
	if token:
		return str(token)
	match = _GREENHOUSE_PATH.search(request.url.path)
	return match.group(1) if match else None


def extract_identity_hint(request: Request) -> str:
	settings = get_settings()
	if request.headers.get(settings.device_key_header_name):
		return "device"
	if request.headers.get("authorization", "").lower().startswith("bearer "):
		return "jwt"
	return "anonymous"


async def get_current_principal(request: Request) -> AuthPrincipal:
	credentials: HTTPAuthorizationCredentials | None = await bearer_scheme(request)
	if credentials is None or credentials.scheme.lower() != "bearer":
		raise _raise_auth(AuthError(code="auth_required", detail="Bearer token is required"))
	try:
		return principal_from_token(credentials.credentials)
	except AuthError as exc:
		raise _raise_auth(exc) from exc


def require_role(*allowed: UserRoleEnum) -> Callable[..., AuthPrincipal]:
	allowed_set = set(allowed)

	async def dependency(principal: AuthPrincipal = Depends(get_current_principal)) -> AuthPrincipal:
		if principal.role not in allowed_set:
			raise HTTPException(
				status_code=status.HTTP_403_FORBIDDEN,
				detail={"error": "forbidden", "message": "Insufficient role"},
			)
		return principal

	return dependency


async def require_device_key(request: Request) -> None:
	"""Shared device key check; an unset key leaves device ingest open."""
	settings = get_settings()
	expected = settings.device_api_key
	if not expected:
		return
	presented = request.headers.get(settings.device_key_header_name, "")
	if not presented or not hmac.compare_digest(presented.strip(), expected):
		raise _raise_auth(AuthError(code="device_key_invalid", detail="Invalid device key"))
