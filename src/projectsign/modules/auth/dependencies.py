from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from projectsign.database import get_db
from projectsign.errors import Forbidden, Unauthorized
from projectsign.modules.auth.models.user import User
from projectsign.modules.auth.services.auth_service import AuthService

security = HTTPBearer(auto_error=False)


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> int:
    """Dependency para obtener el id del usuario autenticado"""
    if credentials is None:
        raise Unauthorized()
    user_id = AuthService.verify_token(credentials.credentials)
    if user_id is None:
        raise Unauthorized("Token inválido")
    user = db.get(User, user_id)
    if user is None:
        raise Unauthorized("Token inválido")
    if not user.is_active:
        raise Forbidden("Usuario inactivo")
    return user.id
