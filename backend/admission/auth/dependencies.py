"""
Authentication dependencies for FastAPI.
"""

from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from admission.auth.jwt import StaffPrincipal, decode_access_token

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


async def get_current_staff(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> StaffPrincipal:
    """
    Get the authenticated staff member.

    Raises 401 if not authenticated or token is invalid.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        raise credentials_exception

    staff = decode_access_token(credentials.credentials)
    if staff is None:
        raise credentials_exception

    return staff


async def require_org_access(
    org_id: UUID,
    staff: StaffPrincipal = Depends(get_current_staff),
) -> StaffPrincipal:
    """
    Verify the token is scoped to the organization in the path.

    Raises 403 for tokens issued for another organization.
    """
    if staff.org_id != org_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not a member of this organization",
        )
    return staff
