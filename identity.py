from dataclasses import dataclass
from typing import Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import Settings, get_settings
from errors import AuthorizationError


@dataclass(frozen=True)
class AuthenticatedUser:
    user_id: str
    email: Optional[str] = None


@dataclass(frozen=True)
class OwnerIdentity:
    resolved_owner_id: str
    is_shared_access: bool = False


def resolve_owner(
    user: AuthenticatedUser, settings: Optional[Settings] = None
) -> OwnerIdentity:
    """Pick whose records the caller reads and writes.

    When a primary owner is configured, everyone except the primary account is
    redirected to the primary owner's records.
    """
    settings = settings or get_settings()
    primary_id = settings.primary_owner_id
    if primary_id and user.email != settings.primary_owner_email:
        return OwnerIdentity(resolved_owner_id=primary_id, is_shared_access=True)
    return OwnerIdentity(resolved_owner_id=user.user_id, is_shared_access=False)


def _serializer(settings: Settings) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(settings.secret_key, salt="identity-token")


def issue_identity_token(
    user: AuthenticatedUser, settings: Optional[Settings] = None
) -> str:
    settings = settings or get_settings()
    return _serializer(settings).dumps({"u": user.user_id, "e": user.email})


def read_identity_token(token: str, settings: Optional[Settings] = None) -> AuthenticatedUser:
    settings = settings or get_settings()
    if not token:
        raise AuthorizationError("Missing identity token")
    try:
        data = _serializer(settings).loads(
            token, max_age=settings.token_max_age_hours * 3600
        )
    except SignatureExpired as exc:
        raise AuthorizationError("Identity token expired") from exc
    except BadSignature as exc:
        raise AuthorizationError("Invalid identity token") from exc

    user_id = data.get("u") if isinstance(data, dict) else None
    if not user_id:
        raise AuthorizationError("Invalid identity token")
    return AuthenticatedUser(user_id=str(user_id), email=data.get("e"))
