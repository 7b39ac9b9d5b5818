from dataclasses import dataclass
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt
from storefront.core.config import settings

security = HTTPBearer(auto_error=False)

@dataclass(frozen=True)
class Identity:
    user_id: str
    role: str = "customer"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

def get_current_identity(creds: HTTPAuthorizationCredentials = Depends(security)) -> Identity:
    if not creds:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = jwt.decode(creds.credentials, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if payload.get("type") != "access" or not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid access token")
    return Identity(user_id=str(payload["sub"]), role=payload.get("role") or "customer")

def require_admin(identity: Identity = Depends(get_current_identity)) -> Identity:
    if not identity.is_admin:
        raise HTTPException(status_code=403, detail="Admin only")
    return identity
