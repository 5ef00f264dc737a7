"""FastAPI dependencies for authentication, authorization, and database access."""

from typing import Generator

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from facility_api.core.security import decode_session_token
from facility_api.db.session import SessionLocal


# Cookie and header names
COOKIE_NAME = "facility_session"
CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _authenticate(request: Request, db: Session):
    """
    Resolve the session cookie to (user, token claims).

    Validates:
    - Session cookie exists
    - JWT is valid and not expired
    - User exists and is active
    - Token version matches (for revocation support)

    Raises:
        HTTPException 401: Authentication failed
    """
    # Import here to avoid circular imports
    from facility_api.db.models import User
    from facility_api.schemas.auth import TokenPayload

    token = request.cookies.get(COOKIE_NAME)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        claims = TokenPayload.model_validate(decode_session_token(token))
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid session")

    user = db.get(User, claims.sub)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account disabled")

    # Token version check (revocation support)
    if user.token_version != claims.token_version:
        raise HTTPException(status_code=401, detail="Session revoked")

    return user, claims


def get_current_session(
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Get full session context: user_id, hospital_id, roles.

    This is the PRIMARY auth dependency for most endpoints.

    Raises:
        HTTPException 401: Not authenticated
        HTTPException 403: No role in the session's hospital
    """
    # Import here to avoid circular imports
    from facility_api.schemas.auth import UserSession
    from facility_api.services import membership_service

    user, claims = _authenticate(request, db)
    hospital_id = claims.hospital_id

    roles = membership_service.get_user_roles(db, user.id, hospital_id)
    if not roles:
        raise HTTPException(status_code=403, detail="No role in this hospital")

    return UserSession(
        user_id=user.id,
        hospital_id=hospital_id,
        roles=roles,
        email=user.email,
        display_name=user.display_name,
    )


def require_permission(permission: str):
    """
    Dependency factory for permission-based authorization.

    Usage:
        @router.put("/x", dependencies=[Depends(require_permission("permissions.manage"))])
    """
    def dependency(request: Request, db: Session = Depends(get_db)):
        from facility_api.services import permission_service

        session = get_current_session(request, db)
        if not permission_service.check_permission(
            db, session.user_id, session.hospital_id, permission
        ):
            raise HTTPException(
                status_code=403,
                detail=f"Missing permission '{permission}'"
            )
        return session
    return dependency


def require_csrf_header(request: Request) -> None:
    """
    Verify CSRF header on mutations.

    Apply to state-changing endpoints (POST, PUT, PATCH, DELETE).

    Raises:
        HTTPException 403: Missing or invalid CSRF header
    """
    if request.headers.get(CSRF_HEADER) != CSRF_HEADER_VALUE:
        raise HTTPException(
            status_code=403,
            detail=f"Missing CSRF header. Include '{CSRF_HEADER}: {CSRF_HEADER_VALUE}'"
        )
