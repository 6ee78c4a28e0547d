from typing import Optional

from fastapi import Depends, Header, HTTPException

from database import get_db


def current_email(x_user_email: Optional[str] = Header(None)) -> Optional[str]:
    """Signed-in user's email as forwarded by the auth layer, or None for guests."""
    if x_user_email and x_user_email.strip():
        return x_user_email.strip().lower()
    return None


def require_user(email: Optional[str] = Depends(current_email)) -> str:
    if not email:
        raise HTTPException(status_code=401, detail="Sign in required")
    return email


def is_admin(db, email: Optional[str]) -> bool:
    if not email:
        return False
    return db["admin"].find_one({"email": email.lower()}) is not None


def require_admin(email: str = Depends(require_user), db=Depends(get_db)) -> str:
    if not is_admin(db, email):
        raise HTTPException(status_code=403, detail="Admin access required")
    return email
