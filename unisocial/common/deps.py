# unisocial/common/deps.py

from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from unisocial.db.session import get_db
from unisocial.models.user import User
from unisocial.core.security import decode_access_token
from unisocial.common.websocket import manager
from unisocial.services.relationship_service import RelationshipService

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token")


def get_relationship_service(db: Session = Depends(get_db)) -> RelationshipService:
    return RelationshipService(db=db, presence=manager)


def get_user_from_token(token: str, db: Session) -> Optional[User]:
    username = decode_access_token(token)
    if username is None:
        return None
    return db.query(User).filter(User.username == username).first()


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    user = get_user_from_token(token, db)
    if user is None:
        raise credentials_exception
    return user
