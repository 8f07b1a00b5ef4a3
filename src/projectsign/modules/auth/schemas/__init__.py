from .auth_schemas import (
    LoginRequest, RegisterRequest, TokenResponse, UserResponse
)

__all__ = [
    'LoginRequest', 'RegisterRequest', 'TokenResponse', 'UserResponse'
]
