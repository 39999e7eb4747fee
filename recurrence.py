"""Serie settimanali di appuntamenti.

Tre pezzi:

* riconoscimento: dato un insieme di appuntamenti grezzi, li raggruppa per
  cliente/dipendente/orario e decide quali gruppi sono una serie settimanale;
* generazione: da un appuntamento "seme" produce le occorrenze settimanali
  (un anno intero) che condividono lo stesso ``recurrence_group_id``;
* modifica: quando si toglie la ricorrenza da un appuntamento della serie,
  elimina le occorrenze future e stacca l'appuntamento dal gruppo.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, NamedTuple, Optional

from sqlalchemy.exc import SQLAlchemyError

import models
from catalog import end_time_for, normalize_date, parse_time

logger = logging.getLogger(__name__)

DEFAULT_WEEKS = 52

# Soglie storiche del gestionale, mantenute identiche per compatibilità coi dati esistenti.
# Non hanno una giustificazione di business documentata.
MIN_GAP_DAYS = 5
MAX_GAP_DAYS = 9
WEEKLY_MIN_DAYS = 6
WEEKLY_MAX_DAYS = 8
WEEKLY_RATIO = 0.8

# Prefissi dei gruppi creati dall'app (recur_) e dalla migrazione (migrated_)
GROUP_PREFIXES = ("recur_", "migrated_")

SERIES_FIELDS = (
    "employee_id",
    "start_time",
    "end_time",
    "client_name",
    "service_type",
    "payment_method",
    "product_sold",
)
EDITABLE_FIELDS = SERIES_FIELDS + ("date",)


class RecurrenceError(ValueError):
    pass


class BatchMaterializationError(RecurrenceError):
    """La serie non è stata salvata: nessuna occorrenza è rimasta nel database."""


def _field(row, name):
    if isinstance(row, dict):
        return row.get(name)
    return getattr(row, name, None)


# --- RICONOSCIMENTO ---

class GroupKey(NamedTuple):
    client_name: str
    employee_id: Any
    start_time: Any
    service_type: Optional[str] = None


@dataclass
class SeriesCandidate:
    key: GroupKey
    members: List[Any]
    duplicates: List[Any] = field(default_factory=list)
    gaps: List[int] = field(default_factory=list)
    is_recurring: bool = False


def _time_key(value):
    try:
        return parse_time(value)
    except (ValueError, TypeError):
        return value


def group_key(row, include_service=False):
    return GroupKey(
        client_name=_field(row, "client_name"),
        employee_id=_field(row, "employee_id"),
        start_time=_time_key(_field(row, "start_time")),
        service_type=_field(row, "service_type") if include_service else None,
    )


def group_candidates(appointments: Iterable[Any], include_service: bool = False) -> Dict[GroupKey, List[Any]]:
    """Raggruppa gli appuntamenti per (cliente, dipendente, orario[, servizio])."""
    gruppi: Dict[GroupKey, List[Any]] = {}
    for apt in appointments:
        gruppi.setdefault(group_key(apt, include_service), []).append(apt)
    return gruppi


def _parse_dates(values):
    try:
        return [normalize_date(v) for v in values]
    except (ValueError, TypeError):
        return None


def day_gaps(dates: Iterable[Any]) -> Optional[List[int]]:
    """Distanze in giorni tra date consecutive (senza duplicati, ordinate).

    ``None`` se una data non è leggibile.
    """
    parsed = _parse_dates(dates)
    if parsed is None:
        return None
    uniche = sorted(set(parsed))
    return [(b - a).days for a, b in zip(uniche, uniche[1:])]


def gaps_look_weekly(gaps: List[int]) -> bool:
    if not gaps:
        return False
    if any(g < MIN_GAP_DAYS or g > MAX_GAP_DAYS for g in gaps):
        return False
    # Con un solo intervallo (2 appuntamenti) basta il controllo 5-9 giorni
    if len(gaps) >= 2:
        settimanali = sum(1 for g in gaps if WEEKLY_MIN_DAYS <= g <= WEEKLY_MAX_DAYS)
        if settimanali / len(gaps) < WEEKLY_RATIO:
            return False
    return True


def is_weekly_series(dates: Iterable[Any]) -> bool:
    gaps = day_gaps(dates)
    if gaps is None:
        return False
    return gaps_look_weekly(gaps)


def _dedupe_by_date(rows):
    """Tiene il primo appuntamento per ogni data, ordinati per data."""
    visti = {}
    doppi = []
    for row in rows:
        giorno = normalize_date(_field(row, "date"))
        if giorno in visti:
            doppi.append(row)
        else:
            visti[giorno] = row
    return [visti[g] for g in sorted(visti)], doppi


def classify_group(key: GroupKey, rows: List[Any]) -> SeriesCandidate:
    try:
        membri, doppi = _dedupe_by_date(rows)
    except (ValueError, TypeError):
        logger.warning(f"⚠️ Date non valide nel gruppo {key}: gruppo scartato")
        return SeriesCandidate(key=key, members=list(rows))

    gaps = day_gaps(_field(r, "date") for r in membri) or []
    return SeriesCandidate(
        key=key,
        members=membri,
        duplicates=doppi,
        gaps=gaps,
        is_recurring=len(membri) >= 2 and gaps_look_weekly(gaps),
    )


def detect_series(appointments: Iterable[Any], include_service: bool = False) -> List[SeriesCandidate]:
    """Valuta ogni gruppo con almeno due appuntamenti."""
    risultati = []
    for key, rows in group_candidates(appointments, include_service).items():
        if len(rows) < 2:
            continue
        risultati.append(classify_group(key, rows))
    return risultati


# --- GENERAZIONE ---

def weekly_dates(seed, weeks: int = DEFAULT_WEEKS) -> List[date]:
    seed = normalize_date(seed)
    return [seed + timedelta(days=7 * i) for i in range(weeks)]


def new_group_id(prefix: str = "recur") -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def materialize_series(seed: Dict[str, Any], weeks: int = DEFAULT_WEEKS, group_id: Optional[str] = None) -> List[Dict[str, Any]]:
    """Le righe di una nuova serie: una per settimana, tutte nello stesso gruppo."""
    group_id = group_id or new_group_id()
    base = {name: seed.get(name) for name in SERIES_FIELDS}
    return [
        dict(base, date=giorno, recurrence_group_id=group_id, is_recurring=True)
        for giorno in weekly_dates(seed["date"], weeks)
    ]


def persist_series(db, rows: List[Dict[str, Any]]) -> List[models.Appointment]:
    """Salva tutte le occorrenze in un'unica transazione."""
    if not rows:
        raise BatchMaterializationError("Nessun appuntamento da creare")
    gruppi = {row.get("recurrence_group_id") for row in rows}
    if len(gruppi) != 1 or None in gruppi:
        raise BatchMaterializationError("Le occorrenze devono condividere lo stesso gruppo")

    appuntamenti = [models.Appointment(**row) for row in rows]
    try:
        db.add_all(appuntamenti)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"❌ Serie {gruppi.pop()} non salvata: {e}")
        raise BatchMaterializationError(f"Errore nel salvataggio della serie: {e}") from e

    logger.info(f"✅ Serie {rows[0]['recurrence_group_id']} creata: {len(appuntamenti)} appuntamenti")
    return appuntamenti


# --- MODIFICA ---

class RecurrenceState(str, Enum):
    STANDALONE = "standalone"
    ACTIVE_MEMBER = "active_member"
    DETACHED = "detached"


def recurrence_state(row) -> RecurrenceState:
    # Flag senza gruppo (dati vecchi): l'appuntamento è singolo
    if _field(row, "recurrence_group_id") and _field(row, "is_recurring"):
        return RecurrenceState.ACTIVE_MEMBER
    return RecurrenceState.STANDALONE


@dataclass
class EditResult:
    appointment: models.Appointment
    state: RecurrenceState
    deleted_ids: List[int] = field(default_factory=list)


def _apply_fields(row, changes):
    for name, value in changes.items():
        setattr(row, name, value)
    if "end_time" not in changes and ("start_time" in changes or "service_type" in changes):
        row.end_time = end_time_for(row.start_time, row.service_type)


def _delete_future_siblings(db, row, today):
    futuri = (
        db.query(models.Appointment)
        .filter(
            models.Appointment.recurrence_group_id == row.recurrence_group_id,
            models.Appointment.id != row.id,
            models.Appointment.date > today,
        )
        .all()
    )
    for apt in futuri:
        db.delete(apt)
    return [apt.id for apt in futuri]


def apply_edit(db, row: models.Appointment, changes: Dict[str, Any], today: date) -> EditResult:
    """Applica una modifica gestendo la serie di appartenenza.

    ``changes`` contiene solo i campi inviati. Se l'appuntamento fa parte di una
    serie attiva e ``is_recurring`` è falso o assente, le occorrenze successive a
    ``today`` vengono eliminate e l'appuntamento esce dal gruppo; quelle passate
    restano com'erano. Un appuntamento senza gruppo resta singolo anche se arriva
    ``is_recurring`` vero.
    """
    stato = recurrence_state(row)
    vuole_ricorrenza = changes.get("is_recurring")
    campi = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS}
    result = EditResult(appointment=row, state=stato)
    try:
        if stato is RecurrenceState.ACTIVE_MEMBER and not vuole_ricorrenza:
            result.deleted_ids = _delete_future_siblings(db, row, today)
            _apply_fields(row, campi)
            row.is_recurring = False
            row.recurrence_group_id = None
            result.state = RecurrenceState.DETACHED
        else:
            _apply_fields(row, campi)
            if vuole_ricorrenza is not None and row.recurrence_group_id:
                row.is_recurring = bool(vuole_ricorrenza)
            elif not row.recurrence_group_id:
                row.is_recurring = False
            result.state = recurrence_state(row)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    if result.deleted_ids:
        logger.info(f"🗑️ Ricorrenza rimossa da {row.id}: eliminati {len(result.deleted_ids)} appuntamenti futuri")
    return result


def delete_series(db, group_id: str, from_date: Optional[date] = None) -> List[int]:
    """Elimina una serie, oppure solo le occorrenze da ``from_date`` in poi."""
    query = db.query(models.Appointment).filter(models.Appointment.recurrence_group_id == group_id)
    if from_date is not None:
        query = query.filter(models.Appointment.date >= from_date)
    righe = query.all()
    eliminati = [apt.id for apt in righe]
    try:
        for apt in righe:
            db.delete(apt)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    return eliminati
