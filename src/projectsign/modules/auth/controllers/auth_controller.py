from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from projectsign.database import get_db
from projectsign.errors import Unauthorized, ValidationError
from projectsign.modules.auth.dependencies import get_current_user_id
from projectsign.modules.auth.models.user import User
from projectsign.modules.auth.schemas.auth_schemas import (
    LoginRequest, RegisterRequest, TokenResponse, UserResponse
)
from projectsign.modules.auth.services.auth_service import AuthService

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post("/login", response_model=TokenResponse)
def login(login_data: LoginRequest, db: Session = Depends(get_db)):
    """Endpoint de login"""
    user = AuthService.authenticate_user(db, login_data.email, login_data.password)
    if not user:
        raise Unauthorized("Email o contraseña incorrectos")

    access_token = AuthService.create_access_token(data={"sub": str(user.id)})

    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        user_id=user.id,
        user_name=user.full_name
    )


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register_user(user_data: RegisterRequest, db: Session = Depends(get_db)):
    """Registro de un nuevo propietario"""
    if db.query(User).filter(User.email == user_data.email).first():
        raise ValidationError("El email ya está registrado")

    new_user = User(
        full_name=user_data.full_name,
        email=user_data.email,
        password_hash=AuthService.get_password_hash(user_data.password),
        is_active=True
    )
    db.add(new_user)
    db.commit()
    db.refresh(new_user)

    return new_user


@router.get("/me", response_model=UserResponse)
def get_current_user_info(
    current_user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Obtener información del usuario actual"""
    return db.get(User, current_user_id)
