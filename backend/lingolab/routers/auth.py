import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from ..settings import settings

router = APIRouter(prefix="/api/auth", tags=["auth"])

logger = logging.getLogger("lingolab.auth")
bearer_scheme = HTTPBearer(auto_error=False)


class User(BaseModel):
	user_id: str
	# True for the WhatsApp bridge acting without an end-user session
	is_service: bool = False


def _decode_session(token: str) -> Optional[User]:
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
	except JWTError:
		return None
	user_id: str | None = payload.get("sub")
	if not user_id:
		return None
	return User(user_id=user_id)


def get_optional_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> Optional[User]:
	if credentials is None or not credentials.credentials:
		return None
	return _decode_session(credentials.credentials)


def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
	if user is None:
		raise HTTPException(status_code=401, detail="Authentication required")
	return user


def is_whatsapp_service(token: Optional[str]) -> bool:
	expected = settings.whatsapp_service_token
	if not expected or not token:
		return False
	return hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8"))


def get_user_or_whatsapp(
	user: Optional[User] = Depends(get_optional_user),
	whatsapp_token: Optional[str] = Header(default=None, alias="X-WhatsApp-Token"),
) -> User:
	if user is not None:
		return user
	if is_whatsapp_service(whatsapp_token):
		logger.info("[auth] request authorized by WhatsApp service token")
		return User(user_id="whatsapp", is_service=True)
	raise HTTPException(status_code=401, detail="Authentication required")


@router.get("/me", response_model=User)
async def me(user: User = Depends(get_current_user)):
	return user
