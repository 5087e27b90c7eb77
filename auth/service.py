"""
auth/service.py -- AuthService: login, registration and admin checks.

Pattern: Service layer over injected collaborators (auth/ports.py). The
service owns the policy -- which lower-layer conditions become which
ErrorKind -- and nothing else. It holds no mutable state, so one instance is
shared by every request.

Error policy:
  - Known storage conditions are classified (see the `known` maps below).
  - Every other exception from a collaborator, the hasher or the issuer
    becomes ErrorKind.INTERNAL. The original exception is chained as
    __cause__ and logged; the AuthError message stays generic.
  - Nothing is retried.
  - Unknown email and wrong password both raise INVALID_CREDENTIALS, and the
    unknown-email path burns a dummy bcrypt verify so the two cannot be told
    apart by timing either [C1].

Deadlines:
  Each operation runs under asyncio.timeout(). Expiry surfaces as
  INTERNAL ("deadline exceeded"). Every operation takes an optional
  timeout= that overrides the constructor default for that call;
  timeout=None runs the call with no deadline. Cancellation of the calling
  task is not caught and propagates as CancelledError.

Logging:
  The logger is injected (default "sso.auth"). Every line carries
  fn=<op> and the email or user_id being processed. Emails are PII.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any

from auth.errors import AuthError, ErrorKind, StorageError
from auth.hasher import PasswordHasher
from auth.ports import ApplicationRegistry, UserDirectory
from auth.tokens import TokenIssuer

logger = logging.getLogger("sso.auth")

DEFAULT_TIMEOUT = 5.0

# Per-call timeout placeholder: use the deadline given at construction.
_USE_DEFAULT: Any = object()


class _OpLog(logging.LoggerAdapter):
    """Appends the bound context to each message as key=value pairs."""

    def process(self, msg, kwargs):
        # Values are user input; escape them so they survive %-formatting of msg.
        ctx = " ".join(f"{k}={v}" for k, v in self.extra.items()).replace("%", "%%")
        return f"{msg} {ctx}", kwargs


class AuthService:
    """Authentication and authorization use cases.

    Args:
        directory:    user persistence (UserDirectory).
        registry:     application lookup (ApplicationRegistry).
        hasher:       bcrypt PasswordHasher.
        issuer:       TokenIssuer used by login().
        token_ttl:    lifetime of issued tokens.
        log:          logger for audit/diagnostic lines.
        timeout:      default per-operation deadline in seconds; None disables it.
        legacy_is_admin_errors:
                      when True, is_admin() reports an unknown user as
                      INVALID_APPLICATION instead of USER_NOT_FOUND, for
                      clients that still match on that code.
    """

    def __init__(
        self,
        directory: UserDirectory,
        registry: ApplicationRegistry,
        hasher: PasswordHasher,
        issuer: TokenIssuer,
        token_ttl: timedelta,
        *,
        log: logging.Logger = logger,
        timeout: float | None = DEFAULT_TIMEOUT,
        legacy_is_admin_errors: bool = False,
    ) -> None:
        self._directory = directory
        self._registry = registry
        self._hasher = hasher
        self._issuer = issuer
        self._token_ttl = token_ttl
        self._log = log
        self._timeout = timeout
        self._legacy_is_admin_errors = legacy_is_admin_errors
        if legacy_is_admin_errors:
            log.warning("legacy is_admin error mapping enabled: unknown users reported as invalid application")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str, app_id: int, *, timeout: float | None = _USE_DEFAULT) -> str:
        """Check the credentials and return a token scoped to app_id.

        Raises AuthError with kind INVALID_CREDENTIALS (unknown email or wrong
        password), INVALID_APPLICATION (unknown app_id) or INTERNAL.
        """
        op = "auth.login"
        log = _OpLog(self._log, {"fn": op, "email": email})
        log.info("attempting to login user")

        async with self._deadline(op, log, timeout):
            try:
                user = await self._directory.find_user_by_email(email)
            except Exception as err:
                failure = self._classify(
                    op, log, err, {ErrorKind.USER_NOT_FOUND: ErrorKind.INVALID_CREDENTIALS}, "get user"
                )
                if failure.kind is ErrorKind.INVALID_CREDENTIALS:
                    try:
                        await asyncio.to_thread(self._hasher.waste_time, password)
                    except Exception as waste_err:
                        log.error("dummy password verify failed: %r", waste_err)
                raise failure from err

            try:
                matched = await asyncio.to_thread(self._hasher.verify, user.pass_hash, password)
            except Exception as err:
                raise self._classify(op, log, err, {}, "verify password") from err
            if not matched:
                log.warning("invalid credentials")
                raise AuthError(ErrorKind.INVALID_CREDENTIALS, op)

            try:
                app = await self._registry.find_application(app_id)
            except Exception as err:
                raise self._classify(
                    op, log, err, {ErrorKind.APP_NOT_FOUND: ErrorKind.INVALID_APPLICATION}, f"get app {app_id}"
                ) from err

            try:
                token = self._issuer.issue(user, app, self._token_ttl)
            except Exception as err:
                raise self._classify(op, log, err, {}, "generate token") from err

        log.info("user logged in successfully")
        return token

    async def register_new_user(self, email: str, password: str, *, timeout: float | None = _USE_DEFAULT) -> int:
        """Create a user and return its id.

        Raises AuthError with kind USER_ALREADY_EXISTS or INTERNAL.
        """
        op = "auth.register_new_user"
        log = _OpLog(self._log, {"fn": op, "email": email})
        log.info("registering user")

        async with self._deadline(op, log, timeout):
            try:
                pass_hash = await asyncio.to_thread(self._hasher.hash, password)
            except Exception as err:
                raise self._classify(op, log, err, {}, "generate password hash") from err

            try:
                user_id = await self._directory.save_user(email, pass_hash)
            except Exception as err:
                raise self._classify(
                    op, log, err, {ErrorKind.USER_EXISTS: ErrorKind.USER_ALREADY_EXISTS}, "save user"
                ) from err

        log.info("user registered")
        return user_id

    async def is_admin(self, user_id: int, *, timeout: float | None = _USE_DEFAULT) -> bool:
        """Return whether user_id holds the admin flag.

        Raises AuthError with kind USER_NOT_FOUND (INVALID_APPLICATION in
        legacy mode) or INTERNAL.
        """
        op = "auth.is_admin"
        log = _OpLog(self._log, {"fn": op, "user_id": user_id})
        log.info("checking if user is admin")

        not_found = ErrorKind.INVALID_APPLICATION if self._legacy_is_admin_errors else ErrorKind.USER_NOT_FOUND
        # Older stores reported an unknown user here as APP_NOT_FOUND; both mean the same thing.
        known = {ErrorKind.USER_NOT_FOUND: not_found, ErrorKind.APP_NOT_FOUND: not_found}

        async with self._deadline(op, log, timeout):
            try:
                result = await self._directory.is_admin(user_id)
            except Exception as err:
                raise self._classify(op, log, err, known, "check admin flag") from err

        log.info("checked if user is admin is_admin=%s", result)
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _deadline(self, op: str, log: logging.LoggerAdapter, timeout: float | None) -> AsyncIterator[None]:
        limit = self._timeout if timeout is _USE_DEFAULT else timeout
        try:
            async with asyncio.timeout(limit):
                yield
        except TimeoutError as err:
            log.error("deadline of %ss exceeded", limit)
            raise AuthError(ErrorKind.INTERNAL, op, "deadline exceeded") from err

    @staticmethod
    def _classify(
        op: str,
        log: logging.LoggerAdapter,
        err: Exception,
        known: dict[ErrorKind, ErrorKind],
        action: str,
    ) -> AuthError:
        """Map a collaborator failure onto the service taxonomy.

        Returns the AuthError; the caller raises it so the traceback points at
        the failing call.
        """
        if isinstance(err, StorageError) and err.kind in known:
            log.warning("%s: %s", action, err.message)
            return AuthError(known[err.kind], op)
        log.error("failed to %s: %r", action, err)
        return AuthError(ErrorKind.INTERNAL, op, f"failed to {action}")
