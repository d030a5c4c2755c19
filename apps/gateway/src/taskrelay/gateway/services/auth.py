"""身份校验 -- Bearer JWT -> Identity

token 模式（默认）：Authorization: Bearer <jwt>，HS256 签名，
密钥取自 TASKRELAY_JWT_SECRET；sub 为 user_id，agentId 为 agent_id。
dev 模式：无 Authorization 头时视为 dev-user/dev-agent，
并允许用 X-Agent-Id 头覆盖 agent_id；带头的请求仍按 JWT 校验。
"""

import os
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Literal

import jwt
import structlog

from taskrelay.core.exceptions import TaskRelayError
from taskrelay.core.models import Identity

log = structlog.get_logger()

ALGORITHM = "HS256"
DEFAULT_SCOPES = ("task:read", "task:write", "task:handoff")
DEFAULT_TTL_HOURS = 24
DEV_SECRET = "dev-secret-change-in-production"
DEV_IDENTITY = Identity(user_id="dev-user", agent_id="dev-agent")


class AuthenticationError(TaskRelayError):
    """凭证缺失、格式错误、过期或签名无效"""


class AuthConfigError(TaskRelayError):
    """token 模式缺少签名密钥"""


def mint_token(
    secret: str,
    user_id: str,
    agent_id: str,
    *,
    ttl_hours: float = DEFAULT_TTL_HOURS,
    scopes: tuple[str, ...] = DEFAULT_SCOPES,
    now: datetime | None = None,
) -> str:
    """签发 agent 访问令牌"""
    issued_at = now or datetime.now(UTC)
    claims = {
        "sub": user_id,
        "agentId": agent_id,
        "scopes": list(scopes),
        "iat": issued_at,
        "exp": issued_at + timedelta(hours=ttl_hours),
    }
    return jwt.encode(claims, secret, algorithm=ALGORITHM)


class TokenAuthenticator:
    """JWT 校验器"""

    def __init__(self, secret: str, mode: Literal["dev", "token"] = "token") -> None:
        self._secret = secret
        self.mode = mode

    @classmethod
    def from_env(cls) -> "TokenAuthenticator":
        """按环境变量构建

        Raises:
            AuthConfigError: token 模式下未设置 TASKRELAY_JWT_SECRET
        """
        mode = os.environ.get("TASKRELAY_AUTH_MODE", "token").lower()
        if mode not in ("dev", "token"):
            log.warning(
                "invalid_auth_mode_config",
                env_var="TASKRELAY_AUTH_MODE",
                value=mode,
                fallback="token",
            )
            mode = "token"

        secret = os.environ.get("TASKRELAY_JWT_SECRET", "")
        if not secret:
            if mode == "token":
                raise AuthConfigError("TASKRELAY_JWT_SECRET is required in token auth mode")
            log.warning("jwt_secret_missing", env_var="TASKRELAY_JWT_SECRET", fallback="dev")
            secret = DEV_SECRET
        return cls(secret, mode=mode)

    def mint(self, user_id: str, agent_id: str, ttl_hours: float = DEFAULT_TTL_HOURS) -> str:
        return mint_token(self._secret, user_id, agent_id, ttl_hours=ttl_hours)

    def _decode(self, token: str) -> Identity:
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise AuthenticationError("Token expired") from e
        except jwt.InvalidTokenError as e:
            raise AuthenticationError("Invalid token") from e

        agent_id = claims.get("agentId")
        if not isinstance(agent_id, str) or not agent_id or not claims["sub"]:
            raise AuthenticationError("Invalid token")
        return Identity(user_id=claims["sub"], agent_id=agent_id)

    def authenticate(self, headers: Mapping[str, str]) -> Identity:
        """校验请求头并返回身份

        Raises:
            AuthenticationError: 凭证缺失/格式错误/过期/无效
        """
        auth_header = headers.get("authorization")

        if not auth_header:
            if self.mode != "dev":
                raise AuthenticationError("Missing authorization header")
            agent_override = headers.get("x-agent-id")
            if agent_override:
                return DEV_IDENTITY.model_copy(update={"agent_id": agent_override})
            return DEV_IDENTITY

        if not auth_header.startswith("Bearer "):
            raise AuthenticationError("Invalid authorization format")

        return self._decode(auth_header[len("Bearer "):].strip())
