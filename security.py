import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from passlib.context import CryptContext
from sqlalchemy.orm import Session

import models
from config import settings
from database import get_db

logger = logging.getLogger(__name__)

security = HTTPBasic()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, stored: str) -> bool:
    try:
        return pwd_context.verify(password, stored)
    except ValueError:
        # Hash in un formato sconosciuto
        return False


@dataclass(frozen=True)
class CurrentUser:
    """Utente autenticato per la richiesta in corso."""

    id: int
    username: str
    role: str
    employee_id: Optional[int] = None

    @property
    def is_superadmin(self) -> bool:
        return self.role == models.ROLE_SUPERADMIN


def authenticate(db, username: str, password: str) -> Optional[CurrentUser]:
    user = db.query(models.User).filter(models.User.username == username).first()
    if not user or not verify_password(password, user.password_hash):
        return None
    return CurrentUser(id=user.id, username=user.username, role=user.role, employee_id=user.employee_id)


def get_current_user(credentials: HTTPBasicCredentials = Depends(security), db: Session = Depends(get_db)) -> CurrentUser:
    user = authenticate(db, credentials.username, credentials.password)
    if user is None:
        logger.warning(f"⚠️ Accesso negato per {credentials.username!r}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Credenziali errate",
            headers={"WWW-Authenticate": "Basic"},
        )
    return user


def require_superadmin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    ensure_superadmin(user)
    return user


def ensure_superadmin(user: CurrentUser):
    if not user.is_superadmin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Accesso negato. Solo il superadmin può eseguire questa operazione.",
        )


def can_modify_appointments_on(user: CurrentUser, giorno: date, today: date) -> bool:
    """I dipendenti non possono toccare gli appuntamenti dei giorni passati."""
    return user.is_superadmin or giorno >= today


def ensure_can_modify(user: CurrentUser, giorno: date, today: date):
    if not can_modify_appointments_on(user, giorno, today):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Non puoi modificare gli appuntamenti dei giorni passati",
        )
