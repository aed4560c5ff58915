"""
CampusGate - Authentication Routes

API endpoints under the identity-provider prefix (/api/auth):
- POST /auth/login                 - Authenticate and create session
- POST /auth/logout                - Terminate current session
- GET  /auth/session-validation    - Is the caller's session still live?
- POST /auth/check-active-session  - Does an account hold a live session?
- POST /auth/terminate-sessions    - End every session of a user
- POST /auth/check-lock-status     - Account lockout state
- GET  /auth/me                    - Current user info
- GET  /auth/sessions              - Current user's sessions

The request gate lets this prefix through untouched, so every route that
needs a caller validates it here via get_current_user.
All operations are logged to the audit trail.
"""

from fastapi import APIRouter, HTTPException, status, Depends, Request, Response
from fastapi.responses import JSONResponse
from sqlmodel import Session as DBSession, select

from campusgate.audit.models import AuditStatus, Severity
from campusgate.auth.dependencies import (
    AuthenticatedUser,
    get_current_user,
    get_db,
    get_session_manager,
)
from campusgate.auth.lockout import (
    check_lock_status,
    record_failed_login,
    record_successful_login,
)
from campusgate.auth.models import Role, User
from campusgate.auth.password import hash_password, needs_rehash, verify_password
from campusgate.auth.schemas import (
    ActiveSessionResponse,
    ActiveSessionsResponse,
    EmailRequest,
    ErrorResponse,
    LockStatusResponse,
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    SessionInfoResponse,
    SessionValidationResponse,
    TerminateSessionsRequest,
    TerminateSessionsResponse,
    UserResponse,
)
from campusgate.auth.tokens import create_access_token, get_token_expiry_seconds
from campusgate.config import settings
from campusgate.gateway.identity import authenticate_request, get_client_ip, get_user_agent
from campusgate.logging import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])

RESOURCE = "AUTHENTICATION"


def _find_user(db: DBSession, email: str):
    return db.exec(select(User).where(User.email == email)).first()


def _set_identity_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.session_cookie,
        value=token,
        max_age=get_token_expiry_seconds(),
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={
        401: {"model": ErrorResponse},
        423: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
    summary="Authenticate user and create session",
)
async def login(
    request: Request,
    response: Response,
    credentials: LoginRequest,
):
    """
    Authenticate user with email and password.

    On successful authentication:
    1. Checks the account is not locked
    2. Validates password against bcrypt hash
    3. Terminates any previous session and creates a new one
    4. Issues an identity token bound to the session (body + cookie)

    Raises:
        401: Invalid credentials or inactive account
        423: Account locked after repeated failures
        503: Session could not be created
    """
    manager = get_session_manager(request)
    audit = manager.audit
    ip_address = get_client_ip(request)
    user_agent = get_user_agent(request)
    db = get_db(request)

    try:
        user = _find_user(db, credentials.email)

        if not user:
            await audit.log_audit_event(
                action="LOGIN_FAILED",
                resource=RESOURCE,
                details="Unknown account",
                ip_address=ip_address,
                user_agent=user_agent,
                status=AuditStatus.FAILURE,
                user_email=credentials.email,
            )
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid credentials",
            )

        now = manager.clock()
        lock = check_lock_status(db, user, now)
        if lock.is_locked:
            await audit.log_audit_event(
                action="LOGIN_BLOCKED",
                resource=RESOURCE,
                details=f"Account locked until {lock.locked_until.isoformat()}",
                ip_address=ip_address,
                user_agent=user_agent,
                status=AuditStatus.WARNING,
                user_id=user.id,
                user_email=user.email,
            )
            raise HTTPException(
                status_code=status.HTTP_423_LOCKED,
                detail="Account is locked due to too many failed login attempts",
                headers={"Retry-After": str(lock.remaining_seconds or 0)},
            )

        if not verify_password(credentials.password, user.password_hash):
            lock = record_failed_login(db, user, now)
            await audit.log_audit_event(
                action="LOGIN_FAILED",
                resource=RESOURCE,
                details=f"Invalid password (attempt {lock.failed_attempts}/{lock.max_attempts})",
                ip_address=ip_address,
                user_agent=user_agent,
                status=AuditStatus.FAILURE,
                user_id=user.id,
                user_email=user.email,
            )
            if lock.is_locked:
                await audit.log_security_event(
                    event_type="ACCOUNT_LOCKED",
                    severity=Severity.HIGH,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    user_id=user.id,
                    user_email=user.email,
                    details=(
                        f"Locked after {lock.failed_attempts} failed attempts "
                        f"(lockout #{lock.lockout_count})"
                    ),
                )
                raise HTTPException(
                    status_code=status.HTTP_423_LOCKED,
                    detail="Account is locked due to too many failed login attempts",
                    headers={"Retry-After": str(lock.remaining_seconds or 0)},
                )
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid credentials",
            )

        if not user.is_active:
            await audit.log_audit_event(
                action="LOGIN_FAILED",
                resource=RESOURCE,
                details="Account is inactive",
                ip_address=ip_address,
                user_agent=user_agent,
                status=AuditStatus.FAILURE,
                user_id=user.id,
                user_email=user.email,
            )
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Account is inactive",
            )

        record_successful_login(db, user)

        # Check if password needs rehash (work factor upgrade)
        if needs_rehash(user.password_hash):
            user.password_hash = hash_password(credentials.password)
            db.add(user)
            db.commit()

        info = await manager.create_session(user.id, ip_address, user_agent)
        if info is None:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Could not create session, please try again",
            )

        access_token, token_id = create_access_token(
            user_id=user.id,
            role=user.role.value,
            session_token=info.session_token,
        )

        await audit.log_audit_event(
            action="LOGIN_SUCCESS",
            resource=RESOURCE,
            details=f"Login successful (token id {token_id})",
            ip_address=ip_address,
            user_agent=user_agent,
            status=AuditStatus.SUCCESS,
            user_id=user.id,
            user_email=user.email,
            session_id=info.session_token,
        )

        _set_identity_cookie(response, access_token)

        return LoginResponse(
            access_token=access_token,
            token_type="bearer",
            expires_in=get_token_expiry_seconds(),
            session_expires_at=info.expires_at,
            user_id=user.id,
            role=user.role.value,
        )

    finally:
        db.close()


@router.post(
    "/logout",
    response_model=LogoutResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Terminate current session",
)
async def logout(
    request: Request,
    response: Response,
    user: AuthenticatedUser = Depends(get_current_user),
):
    """
    End the caller's session. The identity token stops working at once
    because its session token is no longer live.
    """
    manager = get_session_manager(request)
    await manager.terminate_session(
        user.user_id,
        get_client_ip(request),
        get_user_agent(request),
        "Manual logout",
        session_token=user.session_token,
    )
    response.delete_cookie(settings.session_cookie, path="/")
    return LogoutResponse(message="Logged out")


@router.get(
    "/session-validation",
    response_model=SessionValidationResponse,
    responses={401: {"model": SessionValidationResponse}},
    summary="Validate the caller's session",
)
async def session_validation(request: Request):
    """
    Returns {valid: true}, or 401 with the rejection reason
    (not logged in, invalid token, expired, inactivity timeout,
    security violation, validation error).
    """
    result = await authenticate_request(request)
    if result.authenticated:
        return SessionValidationResponse(valid=True)

    body = SessionValidationResponse(
        valid=False,
        reason=result.rejection.value if result.rejection else None,
    )
    return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content=body.model_dump())


@router.post(
    "/check-active-session",
    response_model=ActiveSessionResponse,
    summary="Check whether an account holds a live session",
)
async def check_active_session(request: Request, body: EmailRequest):
    """
    Used by the login screen to warn that signing in will end another
    session. Unknown accounts report no session.
    """
    manager = get_session_manager(request)
    db = get_db(request)

    try:
        user = _find_user(db, body.email)
    finally:
        db.close()

    if not user or not await manager.has_active_session(user.id):
        return ActiveSessionResponse(has_active_session=False)

    await manager.audit.log_security_event(
        event_type="CONCURRENT_SESSION_ATTEMPT",
        severity=Severity.MEDIUM,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
        user_id=user.id,
        user_email=user.email,
        details="Login attempted while another session is active",
    )

    info = await manager.get_session_info(user.id)
    return ActiveSessionResponse(
        has_active_session=True,
        last_activity=info.last_activity if info else None,
    )


@router.post(
    "/terminate-sessions",
    response_model=TerminateSessionsResponse,
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
    summary="Terminate all sessions of a user",
)
async def terminate_sessions(
    request: Request,
    response: Response,
    body: TerminateSessionsRequest,
    user: AuthenticatedUser = Depends(get_current_user),
):
    """
    Users may end their own sessions; SBTE admins may end anyone's.
    """
    if body.user_id != user.user_id and user.role != Role.SBTE_ADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot terminate another user's sessions",
        )

    manager = get_session_manager(request)
    ip_address = get_client_ip(request)
    user_agent = get_user_agent(request)

    terminated = await manager.terminate_all_user_sessions(
        body.user_id,
        ip_address,
        user_agent,
        details=f"All sessions terminated by user {user.user_id}",
    )

    await manager.audit.log_audit_event(
        action="SESSIONS_TERMINATED",
        resource="USER_SESSION",
        details=f"Terminated sessions of user {body.user_id}",
        ip_address=ip_address,
        user_agent=user_agent,
        status=AuditStatus.SUCCESS,
        user_id=user.user_id,
    )

    if body.user_id == user.user_id:
        response.delete_cookie(settings.session_cookie, path="/")

    return TerminateSessionsResponse(
        terminated=terminated,
        message="Sessions terminated" if terminated else "No active session",
    )


@router.post(
    "/check-lock-status",
    response_model=LockStatusResponse,
    summary="Account lockout state",
)
async def check_lock(request: Request, body: EmailRequest):
    manager = get_session_manager(request)
    db = get_db(request)

    try:
        user = _find_user(db, body.email)
        if not user:
            return LockStatusResponse(
                is_locked=False,
                failed_attempts=0,
                max_attempts=settings.MAX_LOGIN_ATTEMPTS,
            )

        lock = check_lock_status(db, user, manager.clock())
        return LockStatusResponse(
            is_locked=lock.is_locked,
            failed_attempts=lock.failed_attempts,
            max_attempts=lock.max_attempts,
            locked_until=lock.locked_until,
            remaining_seconds=lock.remaining_seconds,
        )
    finally:
        db.close()


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get current user information",
)
async def get_me(
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
):
    db = get_db(request)

    try:
        db_user = db.get(User, user.user_id)

        if not db_user:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found",
            )

        return UserResponse(
            id=db_user.id,
            email=db_user.email,
            role=db_user.role.value,
            college_id=db_user.college_id,
            is_active=db_user.is_active,
            created_at=db_user.created_at,
        )

    finally:
        db.close()


@router.get(
    "/sessions",
    response_model=ActiveSessionsResponse,
    summary="List active sessions",
)
async def list_sessions(
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
):
    """
    List the current user's live sessions (at most one under the
    single-session policy).
    """
    manager = get_session_manager(request)
    active = await manager.get_active_sessions(user.user_id)

    sessions = [
        SessionInfoResponse(
            created_at=s.created_at,
            expires_at=s.expires_at,
            last_activity=s.last_activity,
            ip_address=s.ip_address,
            user_agent=s.user_agent,
            is_current=(s.session_token == user.session_token),
        )
        for s in active
    ]

    return ActiveSessionsResponse(sessions=sessions, total=len(sessions))
