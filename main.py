import logging
import re
from contextlib import asynccontextmanager
from datetime import date
from enum import Enum
from typing import Dict, List, Literal, Optional, Union

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Path, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

import database
import housekeeping
import models
import recurrence
import reports
import schemas
from catalog import end_time_for, format_time, month_bounds
from config import settings
from database import get_db
from notifications import notify_admin
from security import (
    CurrentUser,
    ensure_can_modify,
    get_current_user,
    hash_password,
    require_superadmin,
)

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# --- CONFIGURAZIONE INIZIALE ---
database.init_db()


@asynccontextmanager
async def lifespan(app):
    db = database.SessionLocal()
    try:
        database.seed_superadmin(db)
    finally:
        db.close()
    yield


app = FastAPI(title="Atelier", lifespan=lifespan)

# Abilitiamo CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

MONTH_KEY = r"^\d{4}-\d{2}$"


# --- DIPENDENZE ---
def get_today() -> date:
    return date.today()


@app.exception_handler(recurrence.BatchMaterializationError)
def errore_serie(request: Request, exc: recurrence.BatchMaterializationError):
    return JSONResponse(status_code=500, content={"detail": str(exc)})


def _month_or_400(month_key):
    try:
        return month_bounds(month_key)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _get_appointment(db, appointment_id):
    apt = db.query(models.Appointment).filter(models.Appointment.id == appointment_id).first()
    if not apt:
        raise HTTPException(status_code=404, detail="Appuntamento non trovato")
    return apt


def _ensure_employee(db, employee_id):
    if not db.query(models.Employee).filter(models.Employee.id == employee_id).first():
        raise HTTPException(status_code=400, detail="Dipendente inesistente")


def _new_row(payload: schemas.AppointmentCreate):
    dati = payload.model_dump(exclude={"is_recurring"})
    if dati["end_time"] is None:
        dati["end_time"] = end_time_for(dati["start_time"], dati["service_type"])
    return dati


def _out(apt):
    return schemas.AppointmentOut.model_validate(apt)


# --- API DI SERVIZIO ---

@app.get("/api/health")
def health():
    return {"status": "ok"}


@app.get("/api/auth/me", response_model=schemas.AuthOut)
def chi_sono(user: CurrentUser = Depends(get_current_user)):
    return schemas.AuthOut(id=user.id, username=user.username, role=user.role, employee_id=user.employee_id)


# --- APPUNTAMENTI ---

@app.get("/api/appointments", response_model=List[schemas.AppointmentOut])
def lista_appuntamenti(
    giorno: Optional[date] = Query(None, alias="date"),
    employee_id: Optional[int] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    query = db.query(models.Appointment)
    if giorno is not None:
        query = query.filter(models.Appointment.date == giorno)
    if employee_id is not None:
        query = query.filter(models.Appointment.employee_id == employee_id)
    if start is not None:
        query = query.filter(models.Appointment.date >= start)
    if end is not None:
        query = query.filter(models.Appointment.date <= end)
    appuntamenti = query.order_by(models.Appointment.date, models.Appointment.start_time).all()
    logger.debug(f"📋 Recupero appuntamenti - Totale: {len(appuntamenti)}")
    return appuntamenti


@app.get("/api/appointments/search", response_model=List[schemas.AppointmentOut])
def cerca_cliente(q: str, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return (
        db.query(models.Appointment)
        .filter(models.Appointment.client_name.ilike(f"%{q}%"))
        .order_by(models.Appointment.date.desc(), models.Appointment.start_time)
        .all()
    )


@app.get("/api/appointments/{appointment_id}", response_model=schemas.AppointmentOut)
def dettaglio_appuntamento(appointment_id: int, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return _get_appointment(db, appointment_id)


@app.post(
    "/api/appointments",
    status_code=status.HTTP_201_CREATED,
    response_model=Union[schemas.SeriesOut, schemas.AppointmentOut],
)
def crea_appuntamento(
    payload: schemas.AppointmentCreate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
    today: date = Depends(get_today),
):
    ensure_can_modify(user, payload.date, today)
    _ensure_employee(db, payload.employee_id)
    dati = _new_row(payload)

    if payload.is_recurring:
        righe = recurrence.materialize_series(dati, settings.RECURRENCE_WEEKS)
        creati = recurrence.persist_series(db, righe)
        group_id = righe[0]["recurrence_group_id"]
        notify_admin(
            f"🔁 *NUOVA SERIE SETTIMANALE*\n👤 {payload.client_name}\n📅 dal {payload.date} alle {format_time(payload.start_time)}"
        )
        return schemas.SeriesOut(recurrence_group_id=group_id, appointments=[_out(a) for a in creati])

    nuovo = models.Appointment(**dati, is_recurring=False)
    db.add(nuovo)
    db.commit()
    db.refresh(nuovo)
    logger.info(f"✅ Appuntamento creato con ID: {nuovo.id}")
    notify_admin(f"🔔 *NUOVO APPUNTAMENTO*\n👤 {nuovo.client_name}\n📅 {nuovo.date} {format_time(nuovo.start_time)}")
    return _out(nuovo)


@app.post("/api/appointments/batch", status_code=status.HTTP_201_CREATED, response_model=schemas.SeriesOut)
def crea_appuntamenti_batch(
    payload: schemas.AppointmentBatch,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
    today: date = Depends(get_today),
):
    if payload.recurrence_group_id and (
        db.query(models.Appointment)
        .filter(models.Appointment.recurrence_group_id == payload.recurrence_group_id)
        .first()
    ):
        raise HTTPException(status_code=400, detail="Gruppo di ricorrenza già esistente")
    group_id = payload.recurrence_group_id or recurrence.new_group_id()
    righe = []
    for item in payload.appointments:
        ensure_can_modify(user, item.date, today)
        righe.append(dict(_new_row(item), recurrence_group_id=group_id, is_recurring=True))
    for employee_id in {r["employee_id"] for r in righe}:
        _ensure_employee(db, employee_id)

    creati = recurrence.persist_series(db, righe)
    return schemas.SeriesOut(recurrence_group_id=group_id, appointments=[_out(a) for a in creati])


@app.put("/api/appointments/{appointment_id}", response_model=schemas.AppointmentEditOut)
def modifica_appuntamento(
    appointment_id: int,
    payload: schemas.AppointmentUpdate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
    today: date = Depends(get_today),
):
    apt = _get_appointment(db, appointment_id)
    ensure_can_modify(user, apt.date, today)

    changes = payload.model_dump(exclude_unset=True)
    # Campi obbligatori a null: si ignorano
    for name in ("employee_id", "date", "start_time", "client_name", "service_type", "payment_method"):
        if name in changes and changes[name] is None:
            del changes[name]
    if "date" in changes:
        ensure_can_modify(user, changes["date"], today)
    if "employee_id" in changes:
        _ensure_employee(db, changes["employee_id"])

    result = recurrence.apply_edit(db, apt, changes, today)
    db.refresh(result.appointment)
    return schemas.AppointmentEditOut(
        appointment=_out(result.appointment),
        state=result.state.value,
        deleted_ids=result.deleted_ids,
    )


@app.delete("/api/appointments/{appointment_id}")
def cancella_appuntamento(
    appointment_id: int,
    scope: Literal["single", "series"] = "single",
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
    today: date = Depends(get_today),
):
    apt = _get_appointment(db, appointment_id)
    ensure_can_modify(user, apt.date, today)

    if scope == "series" and apt.recurrence_group_id:
        # Questo appuntamento e tutti i successivi della serie
        eliminati = recurrence.delete_series(db, apt.recurrence_group_id, from_date=apt.date)
    else:
        db.delete(apt)
        db.commit()
        eliminati = [appointment_id]
    return {"message": "Appuntamento eliminato", "deleted_ids": eliminati}


class ListaID(BaseModel):
    ids: List[int]


@app.post("/api/appointments/delete-many")
def cancella_multipli(lista: ListaID, db: Session = Depends(get_db), user: CurrentUser = Depends(require_superadmin)):
    eliminati = (
        db.query(models.Appointment)
        .filter(models.Appointment.id.in_(lista.ids))
        .delete(synchronize_session=False)
    )
    db.commit()
    return {"ok": True, "deleted": eliminati}


# --- DIPENDENTI ---

def _get_employee(db, employee_id):
    emp = db.query(models.Employee).filter(models.Employee.id == employee_id).first()
    if not emp:
        raise HTTPException(status_code=404, detail="Dipendente non trovato")
    return emp


@app.get("/api/employees", response_model=List[schemas.EmployeeOut])
def lista_dipendenti(db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return db.query(models.Employee).order_by(models.Employee.full_name).all()


@app.post("/api/employees", status_code=status.HTTP_201_CREATED, response_model=schemas.EmployeeOut)
def crea_dipendente(
    payload: schemas.EmployeeCreate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_superadmin),
):
    dati = payload.model_dump(exclude={"create_credentials", "credentials"})
    emp = models.Employee(**dati)

    cred = payload.credentials
    if payload.create_credentials:
        if not cred or not cred.username or not cred.password:
            raise HTTPException(status_code=400, detail="Username e password richiesti")
        if db.query(models.User).filter(models.User.username == cred.username).first():
            raise HTTPException(status_code=400, detail="Username già in uso")
        emp.user = models.User(
            username=cred.username,
            password_hash=hash_password(cred.password),
            role=models.ROLE_EMPLOYEE,
        )

    db.add(emp)
    db.commit()
    db.refresh(emp)
    logger.info(f"✅ Dipendente creato: {emp.full_name}")
    return emp


@app.put("/api/employees/{employee_id}", response_model=schemas.EmployeeOut)
def modifica_dipendente(
    employee_id: int,
    payload: schemas.EmployeeUpdate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_superadmin),
):
    emp = _get_employee(db, employee_id)
    for name, value in payload.model_dump(exclude={"credentials"}).items():
        setattr(emp, name, value)

    # Aggiorna password se fornita
    if payload.credentials and payload.credentials.password and emp.user:
        emp.user.password_hash = hash_password(payload.credentials.password)

    db.commit()
    db.refresh(emp)
    return emp


@app.delete("/api/employees/{employee_id}")
def cancella_dipendente(employee_id: int, db: Session = Depends(get_db), user: CurrentUser = Depends(require_superadmin)):
    emp = _get_employee(db, employee_id)
    db.delete(emp)
    db.commit()
    return {"message": "Dipendente eliminato"}


# --- SPESE MENSILI ---

# sezione -> (tabella, colonna del tipo)
SECTIONS = {
    "utilities": (models.UtilityExpense, "utility_type"),
    "bar": (models.BarExpense, "expense_type"),
    "product": (models.ProductExpense, "product_type"),
    "maintenance": (models.MaintenanceExpense, "maintenance_type"),
}
# percorso API -> sezione
CATEGORIES = {
    "utilities": "utilities",
    "bar-expenses": "bar",
    "product-expenses": "product",
    "maintenance": "maintenance",
}
# Solo prodotti e manutenzioni hanno le note del mese
NOTE_SECTIONS = ("product", "maintenance")


class ExpenseCategory(str, Enum):
    utilities = "utilities"
    bar = "bar-expenses"
    product = "product-expenses"
    maintenance = "maintenance"


expenses = APIRouter(prefix="/api/expenses", tags=["expenses"])


def _month_expenses(db, section, month_key):
    model, _ = SECTIONS[section]
    return db.query(model).filter(model.month_key == month_key).order_by(model.id).all()


@expenses.get("/{category}/notes/{month_key}")
def leggi_note(
    category: ExpenseCategory,
    month_key: str = Path(pattern=MONTH_KEY),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    section = CATEGORIES[category.value]
    if section not in NOTE_SECTIONS:
        raise HTTPException(status_code=404, detail="Note non previste per questa sezione")
    righe = (
        db.query(models.ExpenseNote)
        .filter(models.ExpenseNote.section == section, models.ExpenseNote.month_key == month_key)
        .all()
    )
    if section == "product":
        return {"notes": righe[0].notes if righe else ""}
    return {r.note_type: r.notes or "" for r in righe}


@expenses.post("/{category}/notes/{month_key}")
def salva_note(
    category: ExpenseCategory,
    payload: schemas.NotesIn,
    month_key: str = Path(pattern=MONTH_KEY),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    section = CATEGORIES[category.value]
    if section not in NOTE_SECTIONS:
        raise HTTPException(status_code=404, detail="Note non previste per questa sezione")
    note_type = payload.type if section == "maintenance" else ""
    nota = (
        db.query(models.ExpenseNote)
        .filter(
            models.ExpenseNote.section == section,
            models.ExpenseNote.month_key == month_key,
            models.ExpenseNote.note_type == note_type,
        )
        .first()
    )
    if nota is None:
        nota = models.ExpenseNote(section=section, month_key=month_key, note_type=note_type)
        db.add(nota)
    nota.notes = payload.notes
    db.commit()
    return {"message": "Note salvate"}


@expenses.get("/{category}/{month_key}")
def leggi_spese(
    category: ExpenseCategory,
    month_key: str = Path(pattern=MONTH_KEY),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    section = CATEGORIES[category.value]
    _, type_attr = SECTIONS[section]
    return reports.group_by_type(_month_expenses(db, section, month_key), type_attr)


@expenses.post("/{category}/{month_key}", status_code=status.HTTP_201_CREATED)
def aggiungi_spesa(
    category: ExpenseCategory,
    payload: schemas.ExpenseIn,
    month_key: str = Path(pattern=MONTH_KEY),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    _month_or_400(month_key)
    model, type_attr = SECTIONS[CATEGORIES[category.value]]
    spesa = model(month_key=month_key, price=payload.price, reason=payload.reason or None)
    setattr(spesa, type_attr, payload.type)
    db.add(spesa)
    db.commit()
    return {"message": "Spesa aggiunta", "id": spesa.id}


@expenses.delete("/{category}/{month_key}/{expense_id}")
def cancella_spesa(
    category: ExpenseCategory,
    expense_id: int,
    month_key: str = Path(pattern=MONTH_KEY),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    model, _ = SECTIONS[CATEGORIES[category.value]]
    eliminati = db.query(model).filter(model.id == expense_id, model.month_key == month_key).delete()
    db.commit()
    if not eliminati:
        raise HTTPException(status_code=404, detail="Spesa non trovata")
    return {"message": "Spesa eliminata"}


app.include_router(expenses)


# --- SOTTO-CATEGORIE PERSONALIZZATE ---

def slug_from_name(name):
    s = re.sub(r"\s+", "_", str(name or "").strip().lower())
    s = re.sub(r"[^a-z0-9_]", "", s)
    return s or "custom"


@app.get("/api/custom-categories", response_model=List[schemas.CustomCategoryOut])
def lista_sottocategorie(
    section: str,
    month_key: str = Query(pattern=MONTH_KEY),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return (
        db.query(models.CustomCategory)
        .filter(models.CustomCategory.section == section, models.CustomCategory.month_key == month_key)
        .order_by(models.CustomCategory.id)
        .all()
    )


@app.post("/api/custom-categories", status_code=status.HTTP_201_CREATED, response_model=schemas.CustomCategoryOut)
def crea_sottocategoria(
    payload: schemas.CustomCategoryIn,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_superadmin),
):
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="section, month_key e name richiesti")
    _month_or_400(payload.month_key)

    base_slug = slug_from_name(name)
    slug, n = base_slug, 1
    while (
        db.query(models.CustomCategory)
        .filter(
            models.CustomCategory.section == payload.section,
            models.CustomCategory.month_key == payload.month_key,
            models.CustomCategory.slug == slug,
        )
        .first()
    ):
        n += 1
        slug = f"{base_slug}_{n}"

    categoria = models.CustomCategory(section=payload.section, month_key=payload.month_key, name=name, slug=slug)
    db.add(categoria)
    db.commit()
    db.refresh(categoria)
    return categoria


@app.delete("/api/custom-categories/{category_id}")
def cancella_sottocategoria(category_id: int, db: Session = Depends(get_db), user: CurrentUser = Depends(require_superadmin)):
    categoria = db.query(models.CustomCategory).filter(models.CustomCategory.id == category_id).first()
    if not categoria:
        raise HTTPException(status_code=404, detail="Sotto-categoria non trovata")

    # Insieme alla sotto-categoria spariscono le sue spese
    if categoria.section in SECTIONS:
        model, type_attr = SECTIONS[categoria.section]
        db.query(model).filter(
            model.month_key == categoria.month_key, getattr(model, type_attr) == categoria.slug
        ).delete(synchronize_session=False)
    db.delete(categoria)
    db.commit()
    return {"message": "Sotto-categoria eliminata"}


# --- REPORT ---

def _appointments_between(db, start, end, employee_id=None):
    query = db.query(models.Appointment).filter(models.Appointment.date >= start, models.Appointment.date <= end)
    if employee_id is not None:
        query = query.filter(models.Appointment.employee_id == employee_id)
    return query.all()


@app.get("/api/reports/monthly/{month_key}")
def report_mensile(
    month_key: str = Path(pattern=MONTH_KEY),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_superadmin),
):
    start, end = _month_or_400(month_key)
    totali = {section: reports.sum_prices(_month_expenses(db, section, month_key)) for section in SECTIONS}
    summary = reports.monthly_summary(
        _appointments_between(db, start, end),
        month_key,
        utilities=totali["utilities"],
        bar=totali["bar"],
        maintenance=totali["maintenance"],
        products=totali["product"],
        employee_share=settings.EMPLOYEE_SHARE,
    )
    return summary.as_dict()


@app.get("/api/reports/employees/{employee_id}", response_model=schemas.EmployeeEarningsOut)
def report_dipendente(
    employee_id: int,
    month_key: Optional[str] = Query(None, pattern=MONTH_KEY),
    start: Optional[date] = None,
    end: Optional[date] = None,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
    today: date = Depends(get_today),
):
    # Un dipendente vede solo i propri guadagni
    if not user.is_superadmin and user.employee_id != employee_id:
        raise HTTPException(status_code=403, detail="Accesso negato")
    _get_employee(db, employee_id)

    if start is not None and end is not None:
        if start > end:
            raise HTTPException(status_code=400, detail="Intervallo di date non valido")
    else:
        start, end = _month_or_400(month_key or f"{today.year:04d}-{today.month:02d}")

    risultato = reports.employee_earnings(
        _appointments_between(db, start, end, employee_id),
        employee_id,
        start,
        end,
        employee_share=settings.EMPLOYEE_SHARE,
    )
    risultato.revenue = round(risultato.revenue, 2)
    risultato.earnings = round(risultato.earnings, 2)
    return risultato


@app.get("/api/reports/daily/{giorno}", response_model=Dict[int, schemas.DailyTakingsOut])
def report_giornaliero(giorno: date, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    takings = reports.daily_takings(_appointments_between(db, giorno, giorno), giorno)
    return {
        employee_id: schemas.DailyTakingsOut(
            total=voce["total"],
            cash=voce["cash"],
            card=voce["card"],
            unpaid=[_out(a) for a in voce["unpaid"]],
        )
        for employee_id, voce in takings.items()
    }


# --- AMMINISTRAZIONE ---

admin = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_superadmin)])


@admin.post("/remove-recurrences")
def rimuovi_ricorrenze(db: Session = Depends(get_db)):
    results = housekeeping.remove_recurrences(db)
    summary = results.pop("summary")
    return {
        "success": True,
        "message": (
            f"Rimozione ricorrenze completata: {summary['kept']} appuntamenti mantenuti, "
            f"{summary['deleted']} eliminati"
        ),
        "summary": summary,
        "results": results,
    }


@admin.post("/migrate-recurrences")
def migra_ricorrenze(include_service: bool = False, db: Session = Depends(get_db)):
    return housekeeping.migrate_recurring(db, include_service=include_service)


@admin.post("/fix-recurring-flag")
def correggi_flag(db: Session = Depends(get_db)):
    aggiornati = housekeeping.fix_recurring_flag(db)
    return {"updated": aggiornati}


@admin.get("/debug-recurrences")
def debug_ricorrenze(db: Session = Depends(get_db), today: date = Depends(get_today)):
    return housekeeping.debug_recurrences(db, today)


app.include_router(admin)
