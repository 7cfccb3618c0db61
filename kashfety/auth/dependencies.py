from dataclasses import dataclass

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from kashfety.auth import jwt_handler

security = HTTPBearer()

PATIENT_ROLE = "patient"
DOCTOR_ROLE = "doctor"
CENTER_ROLE = "center"
ADMIN_ROLE = "admin"
KNOWN_ROLES = {PATIENT_ROLE, DOCTOR_ROLE, CENTER_ROLE, ADMIN_ROLE}
STAFF_ROLES = {CENTER_ROLE, ADMIN_ROLE}


@dataclass(frozen=True)
class Caller:
    """Identity verified upstream; the engine does not re-authenticate it."""
    caller_id: str
    role: str

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


def get_current_caller(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Caller:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except Exception as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    role = (payload.get("role") or "").strip().lower()
    if role not in KNOWN_ROLES:
        raise HTTPException(status_code=403, detail="Unknown role")

    return Caller(caller_id=subject, role=role)


def require_schedule_access(caller: Caller, provider_id: str) -> None:
    if caller.is_staff:
        return
    if caller.role == DOCTOR_ROLE and caller.caller_id == provider_id:
        return
    raise HTTPException(status_code=403, detail="Only the provider or center staff can manage this schedule.")
