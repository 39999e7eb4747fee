"""Password, permessi e notifiche."""

from datetime import date

import pytest
import requests
from fastapi import HTTPException

import notifications
from config import settings
from security import CurrentUser, authenticate, can_modify_appointments_on, ensure_can_modify, hash_password, verify_password


class TestPasswords:
    def test_hash_and_verify(self):
        stored = hash_password("segreta")
        assert stored.startswith("$2b$")
        assert verify_password("segreta", stored)
        assert not verify_password("altra", stored)

    def test_malformed_hash(self):
        assert not verify_password("segreta", "testo-in-chiaro")

    def test_authenticate(self, db):
        assert authenticate(db, "admin", "admin123").is_superadmin
        assert authenticate(db, "admin", "no") is None
        assert authenticate(db, "nessuno", "admin123") is None


class TestPastDays:
    oggi = date(2024, 3, 15)
    dipendente = CurrentUser(id=2, username="luca", role="employee", employee_id=1)
    admin = CurrentUser(id=1, username="admin", role="superadmin")

    def test_employee(self):
        assert can_modify_appointments_on(self.dipendente, self.oggi, self.oggi)
        assert not can_modify_appointments_on(self.dipendente, date(2024, 3, 14), self.oggi)
        with pytest.raises(HTTPException) as exc:
            ensure_can_modify(self.dipendente, date(2024, 3, 14), self.oggi)
        assert exc.value.status_code == 403

    def test_superadmin(self):
        assert can_modify_appointments_on(self.admin, date(2020, 1, 1), self.oggi)


class _Risposta:
    def __init__(self, ok=True):
        self.ok = ok

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError("500")


class TestNotifications:
    def test_not_configured(self, monkeypatch):
        monkeypatch.setattr(settings, "TELEGRAM_BOT_TOKEN", "")
        assert notifications.notify_admin("ciao") is False

    def test_sent(self, monkeypatch):
        chiamate = []
        monkeypatch.setattr(settings, "TELEGRAM_BOT_TOKEN", "tok")
        monkeypatch.setattr(settings, "TELEGRAM_CHAT_ID", "42")
        monkeypatch.setattr(requests, "post", lambda url, **kw: chiamate.append((url, kw)) or _Risposta())
        assert notifications.notify_admin("ciao") is True
        assert chiamate[0][0] == "https://api.telegram.org/bottok/sendMessage"
        assert chiamate[0][1]["json"]["chat_id"] == "42"

    def test_error_is_logged_not_raised(self, monkeypatch):
        monkeypatch.setattr(settings, "TELEGRAM_BOT_TOKEN", "tok")
        monkeypatch.setattr(settings, "TELEGRAM_CHAT_ID", "42")
        monkeypatch.setattr(requests, "post", lambda url, **kw: _Risposta(ok=False))
        assert notifications.notify_admin("ciao") is False
