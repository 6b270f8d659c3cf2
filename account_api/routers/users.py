from __future__ import annotations

from fastapi import APIRouter, Body, Depends, Form, HTTPException, Request, Response

from account_api.core.config import get_settings
from account_api.core.rate_limiter import rate_limit_ip
from account_api.repositories import (
    DuplicateEntryError,
    FilterError,
    InvalidMobileError,
    SQLRepository,
    parse_filter,
    parse_json_param,
)
from account_api.schemas import (
    CountOut,
    ForgetPasswordOut,
    JournalOut,
    OTPRefreshOut,
    ProfileData,
    ResultOut,
    RoleOut,
    SessionOut,
    TokenOut,
    TrackOut,
    UserOut,
    UserPatch,
    UserReplace,
)
from account_api.services.account_service import (
    AccountExistsError,
    AccountNotFoundError,
    AccountService,
    InvalidCredentialsError,
    InvalidOTPError,
    InvalidResetTokenError,
    RegistrationError,
)
from account_api.services.session_service import current_profile

router = APIRouter(tags=["user"])


def _account_service(request: Request) -> AccountService:
    svc = getattr(getattr(request.app, "state", None), "account_service", None)
    if not svc:
        raise RuntimeError("AccountService not configured")
    return svc


def _repository(request: Request) -> SQLRepository:
    return _account_service(request).repository


def _require_user(repo: SQLRepository, user_id: str):
    user = repo.get_user(user_id)
    if not user:
        raise HTTPException(404, f"Entity not found: User with id {user_id}")
    return user


# -------------------------------------- lifecycle --------------------------------------
@router.post("/user", response_model=UserOut)
def create(
    request: Request,
    mobile: str = Form(...),
    email: str = Form(""),
    name: str = Form(""),
    password: str = Form(...),
):
    rate_limit_ip(request, "user:create", limit=3, window_seconds=300)
    try:
        return _account_service(request).register(mobile, email, name, password)
    except AccountExistsError as exc:
        raise HTTPException(400, str(exc))
    except RegistrationError as exc:
        raise HTTPException(400, exc.message)


@router.post("/user/login", response_model=TokenOut)
def login(request: Request, mobile: str = Form(...), password: str = Form(...)):
    rate_limit_ip(request, "user:login", limit=5, window_seconds=60)
    try:
        result = _account_service(request).login(mobile, password, device=request.headers.get("user-agent"))
    except InvalidCredentialsError as exc:
        raise HTTPException(401, str(exc))
    return {"token": result.token}


@router.get("/me")
def who_am_i(profile: dict = Depends(current_profile)):
    return profile


@router.post("/user/verify", response_model=UserOut)
def verify_otp(request: Request, otp: str = Form(...), profile: dict = Depends(current_profile)):
    try:
        return _account_service(request).verify_otp(profile["user"], otp)
    except InvalidOTPError as exc:
        raise HTTPException(400, str(exc))


@router.post("/user/otp/refresh", response_model=OTPRefreshOut)
def refresh_otp(request: Request, profile: dict = Depends(current_profile)):
    rate_limit_ip(request, "user:otp", limit=3, window_seconds=300)
    try:
        result = _account_service(request).refresh_otp(profile["user"])
    except AccountNotFoundError as exc:
        raise HTTPException(401, str(exc))
    return {"refresh": result.refresh, "sent": result.sent}


@router.get("/user/forget/{mobile}", response_model=ForgetPasswordOut, response_model_exclude_none=True)
def forget_password(request: Request, mobile: str):
    rate_limit_ip(request, "user:forget", limit=5, window_seconds=300)
    try:
        issued = _account_service(request).forget_password(mobile)
    except AccountNotFoundError as exc:
        raise HTTPException(401, str(exc))
    body = {"result": issued.result}
    if get_settings().expose_reset_token:
        body["token"] = issued.token
    return body


@router.post("/user/forget", response_model=ResultOut)
def set_new_password(request: Request, token: str = Form(...), password: str = Form(...)):
    try:
        _account_service(request).set_new_password(token, password)
    except InvalidResetTokenError as exc:
        raise HTTPException(401, str(exc))
    except RegistrationError as exc:
        raise HTTPException(400, exc.message)
    return {"result": True}


# -------------------------------------- CRUD --------------------------------------
@router.get("/user/count", response_model=CountOut)
def count(request: Request, where: str | None = None):
    try:
        total = _repository(request).count_users(parse_json_param(where, "where"))
    except FilterError as exc:
        raise HTTPException(400, str(exc))
    return {"count": total}


@router.get("/user", response_model=list[UserOut])
def find(request: Request, filter: str | None = None):
    try:
        return _repository(request).find_users(parse_filter(parse_json_param(filter, "filter")))
    except FilterError as exc:
        raise HTTPException(400, str(exc))


@router.patch("/user", response_model=CountOut)
def update_all(request: Request, user: UserPatch, where: str | None = None):
    try:
        changed = _repository(request).update_users(user.model_dump(exclude_unset=True), parse_json_param(where, "where"))
    except (FilterError, InvalidMobileError) as exc:
        raise HTTPException(400, str(exc))
    except DuplicateEntryError:
        raise HTTPException(400, "This mobile already exists")
    return {"count": changed}


@router.get("/user/{user_id}", response_model=UserOut)
def find_by_id(request: Request, user_id: str, filter: str | None = None):
    try:
        query = parse_filter(parse_json_param(filter, "filter"), allow_where=False)
        user = _repository(request).find_user_by_id(user_id, query)
    except FilterError as exc:
        raise HTTPException(400, str(exc))
    if not user:
        raise HTTPException(404, f"Entity not found: User with id {user_id}")
    return user


@router.patch("/user/{user_id}", status_code=204)
def update_by_id(request: Request, user_id: str, user: UserPatch):
    try:
        found = _repository(request).update_user(user_id, user.model_dump(exclude_unset=True))
    except InvalidMobileError as exc:
        raise HTTPException(400, str(exc))
    except DuplicateEntryError:
        raise HTTPException(400, "This mobile already exists")
    if not found:
        raise HTTPException(404, f"Entity not found: User with id {user_id}")
    return Response(status_code=204)


@router.put("/user/{user_id}", status_code=204)
def replace_by_id(request: Request, user_id: str, user: UserReplace):
    try:
        found = _repository(request).replace_user(user_id, user.model_dump())
    except InvalidMobileError as exc:
        raise HTTPException(400, str(exc))
    except DuplicateEntryError:
        raise HTTPException(400, "This mobile already exists")
    if not found:
        raise HTTPException(404, f"Entity not found: User with id {user_id}")
    return Response(status_code=204)


@router.delete("/user/{user_id}", status_code=204)
def delete_by_id(request: Request, user_id: str):
    if not _repository(request).delete_user(user_id):
        raise HTTPException(404, f"Entity not found: User with id {user_id}")
    return Response(status_code=204)


# -------------------------------------- relations --------------------------------------
@router.get("/user/{user_id}/profile", response_model=ProfileData)
def get_profile(request: Request, user_id: str):
    repo = _repository(request)
    _require_user(repo, user_id)
    profile = repo.get_profile(user_id)
    if profile is None:
        raise HTTPException(404, f"Entity not found: Profile for user {user_id}")
    return profile


@router.put("/user/{user_id}/profile", response_model=ProfileData)
def put_profile(request: Request, user_id: str, data: ProfileData = Body(...)):
    repo = _repository(request)
    _require_user(repo, user_id)
    return repo.upsert_profile(user_id, data)


@router.get("/user/{user_id}/sessions", response_model=list[SessionOut])
def get_sessions(request: Request, user_id: str):
    repo = _repository(request)
    _require_user(repo, user_id)
    return repo.find_sessions_by_user_id(user_id)


@router.get("/user/{user_id}/roles", response_model=list[RoleOut])
def get_roles(request: Request, user_id: str):
    repo = _repository(request)
    _require_user(repo, user_id)
    return repo.find_roles_by_user_id(user_id)


@router.get("/user/{user_id}/tracks", response_model=list[TrackOut])
def get_tracks(request: Request, user_id: str):
    repo = _repository(request)
    _require_user(repo, user_id)
    return repo.find_tracks_by_user_id(user_id)


@router.get("/user/{user_id}/journals", response_model=list[JournalOut])
def get_journals(request: Request, user_id: str):
    repo = _repository(request)
    _require_user(repo, user_id)
    return repo.find_journals_by_user_id(user_id)
