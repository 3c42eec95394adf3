from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from heron_booking.auth import jwt_handler
from heron_booking.models.appointment_request import Role
from heron_booking.repositories.directory import DirectoryRepository, ParticipantDetails

security = HTTPBearer()


def get_directory(request: Request) -> DirectoryRepository:
    return request.app.state.directory


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    directory: DirectoryRepository = Depends(get_directory),
) -> ParticipantDetails:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except Exception as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    try:
        role = Role(payload.get("role"))
    except ValueError as exc:
        raise HTTPException(status_code=401, detail="Invalid token role") from exc

    user = directory.get_participant(role, user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user
