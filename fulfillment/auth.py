import os
from pathlib import Path
from dotenv import load_dotenv
from fastapi import Header, HTTPException
from jose import jwt
from pydantic import BaseModel

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

ROLES = {"buyer", "seller", "admin"}


class Caller(BaseModel):
    user_id: str
    role: str = "buyer"

    @property
    def is_admin(self):
        return self.role == "admin"


def verify_token(authorization: str = Header(...)) -> Caller:
    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            raise Exception()
        claims = jwt.decode(token, os.getenv("JWT_SECRET"), algorithms=["HS256"])
        role = claims.get("role") or "buyer"
        if not claims.get("sub") or role not in ROLES:
            raise Exception()
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid or missing token")
    return Caller(user_id=str(claims["sub"]), role=role)
