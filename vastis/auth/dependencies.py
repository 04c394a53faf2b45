import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from vastis.auth import jwt_handler
from vastis.core.identity import ROLES, Identity
from vastis.database import get_db
from vastis.models.user import User

security = HTTPBearer()


def get_current_identity(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> Identity:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    subject = payload.get("sub")
    if not subject or not str(subject).isdigit():
        raise HTTPException(status_code=401, detail="Invalid token subject")

    user = db.query(User).filter(User.id == int(subject)).first()
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")

    # The stored role wins over the token claim so a demoted user loses access at once.
    if user.role not in ROLES:
        raise HTTPException(status_code=403, detail="Unknown role")
    return Identity(user_id=user.id, role=user.role)
