from __future__ import annotations

import logging
from typing import Dict, List, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from food_ordering.core.config import RATE_LIMIT_AUTH, RATE_LIMIT_GENERAL, RATE_LIMIT_USER, REDIS_URL
from food_ordering.core.errors import RateLimitedError, app_error_response
from food_ordering.core.rate_limiter import (
    InMemoryRateLimiterService,
    RateLimitDecision,
    RateLimiterService,
    RateLimitRule,
    RedisRateLimiterService,
)
from food_ordering.services.auth import decode_access_token, extract_user_id

logger = logging.getLogger(__name__)

GENERAL_SCOPE = "general"
AUTH_SCOPE = "auth"
USER_SCOPE = "user"

SCOPE_MESSAGES = {
    GENERAL_SCOPE: "Too many requests from this client, please try again later",
    AUTH_SCOPE: "Too many authentication attempts, please try again later",
    USER_SCOPE: "Too many requests, please slow down",
}


def default_rules() -> Dict[str, RateLimitRule]:
    return {
        GENERAL_SCOPE: RateLimitRule.parse(RATE_LIMIT_GENERAL),
        AUTH_SCOPE: RateLimitRule.parse(RATE_LIMIT_AUTH),
        USER_SCOPE: RateLimitRule.parse(RATE_LIMIT_USER),
    }


def build_rate_limiter() -> RateLimiterService:
    if REDIS_URL:
        return RedisRateLimiterService.from_url(REDIS_URL)
    return InMemoryRateLimiterService()


def scopes_for_path(path: str) -> List[str]:
    scopes = [GENERAL_SCOPE]
    if path.startswith("/api/auth/"):
        scopes.append(AUTH_SCOPE)
    elif path.startswith("/api/"):
        scopes.append(USER_SCOPE)
    return scopes


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        *,
        rate_limiter: RateLimiterService | None = None,
        rules: Dict[str, RateLimitRule] | None = None,
    ) -> None:
        super().__init__(app)
        self._rate_limiter = rate_limiter or InMemoryRateLimiterService()
        self._rules = rules or default_rules()

    async def dispatch(self, request: Request, call_next):
        client_key = _client_key(request)
        tightest: Optional[RateLimitDecision] = None

        for scope in scopes_for_path(request.url.path):
            rule = self._rules.get(scope)
            if rule is None:
                continue
            try:
                decision = self._rate_limiter.check(key=f"{scope}:{client_key}", rule=rule)
            except Exception:
                # backend down: let the request through
                logger.warning("Rate limiter unavailable for scope=%s", scope, exc_info=True)
                continue

            if not decision.allowed:
                error = RateLimitedError(SCOPE_MESSAGES[scope], retry_after_seconds=decision.retry_after_seconds)
                logger.info("Rate limit hit scope=%s key=%s", scope, client_key)
                return app_error_response(
                    error,
                    headers={"X-RateLimit-Limit": str(decision.limit), "X-RateLimit-Remaining": "0"},
                )
            if tightest is None or decision.remaining < tightest.remaining:
                tightest = decision

        response = await call_next(request)
        if tightest is not None:
            response.headers["X-RateLimit-Limit"] = str(tightest.limit)
            response.headers["X-RateLimit-Remaining"] = str(tightest.remaining)
        return response


def _client_key(request: Request) -> str:
    authorization = request.headers.get("Authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token:
        try:
            user_id = extract_user_id(decode_access_token(token.strip()))
        except ValueError:
            user_id = None
        if user_id is not None:
            return f"user:{user_id}"
    host = request.client.host if request.client else "unknown"
    return f"ip:{host}"
