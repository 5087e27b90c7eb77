"""
api/routes/v1/auth.py -- Login, registration and admin-check REST endpoints.

Routes:
  POST /api/v1/auth/login                    -- email/password/app_id -> signed token
  POST /api/v1/auth/register                 -- create a user; 201 with the new id
  GET  /api/v1/auth/users/{user_id}/is-admin -- admin flag for a user

Handlers are thin: they call AuthService and return its result. AuthError is
not caught here -- the handler in api/main.py turns err.kind into a status
code and error envelope, so every route reports failures the same way.

Security:
  [H2] POST /login is rate-limited per IP (LOGIN_RATE_LIMIT, default 10/minute).
  [C1] Unknown email and wrong password both come back as 401
       invalid_credentials; AuthService equalizes their timing.
  [M5] Cache-Control: no-store on login responses (they carry a token).
"""

from __future__ import annotations

from fastapi import APIRouter, Path, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_limit
from api.models import MAX_ID, IsAdminResponse, LoginRequest, LoginResponse, RegisterRequest, RegisterResponse
from auth.service import AuthService

# Auth policy:
# - POST /api/v1/auth/login:                     public -- this is how callers get a token
# - POST /api/v1/auth/register:                  public -- self-registration
# - GET  /api/v1/auth/users/{user_id}/is-admin:  public -- queried by trusted backend services
router = APIRouter()


@limiter.limit(login_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
async def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a token for body.app_id."""
    service: AuthService = request.app.state.auth_service
    token = await service.login(body.email, body.password, body.app_id)
    resp = JSONResponse(status_code=200, content=LoginResponse(token=token).model_dump())
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/register", response_model=RegisterResponse, status_code=201)
async def register(request: Request, body: RegisterRequest) -> RegisterResponse:
    """Register a new user. 409 if the email is already taken."""
    service: AuthService = request.app.state.auth_service
    user_id = await service.register_new_user(body.email, body.password)
    return RegisterResponse(user_id=user_id)


@router.get("/auth/users/{user_id}/is-admin", response_model=IsAdminResponse)
async def is_admin(request: Request, user_id: int = Path(gt=0, le=MAX_ID)) -> IsAdminResponse:
    """Return whether the user holds the admin flag. 404 for an unknown user."""
    service: AuthService = request.app.state.auth_service
    return IsAdminResponse(is_admin=await service.is_admin(user_id))
