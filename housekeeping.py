"""Operazioni di manutenzione sulle serie ricorrenti, lanciate dal superadmin.

Ogni gruppo viene salvato nella sua transazione: un errore su un gruppo finisce
in ``errors`` e non blocca gli altri.
"""

import logging
from datetime import timedelta

from sqlalchemy import desc, func, or_
from sqlalchemy.exc import SQLAlchemyError

import models
from catalog import format_time
from recurrence import GROUP_PREFIXES, detect_series, new_group_id

logger = logging.getLogger(__name__)

A = models.Appointment


def _summary_row(apt):
    return {
        "id": apt.id,
        "client": apt.client_name,
        "date": apt.date.isoformat(),
        "time": format_time(apt.start_time),
    }


def _flagged_query(db):
    return (
        db.query(A)
        .filter(or_(A.recurrence_group_id.isnot(None), A.is_recurring.is_(True)))
        .order_by(A.date, A.start_time)
    )


def remove_recurrences(db):
    """Per ogni serie tiene solo il primo appuntamento (senza ricorrenza) ed elimina gli altri."""
    logger.info("🔄 Avvio rimozione ricorrenze...")
    results = {"kept": [], "deleted": [], "updated": [], "errors": []}

    gruppi = {}
    for apt in _flagged_query(db).all():
        gruppi.setdefault(apt.recurrence_group_id or f"single_{apt.id}", []).append(apt)

    for group_id, apts in gruppi.items():
        kept, deleted, updated = [], [], []
        try:
            serie_vera = group_id.startswith(GROUP_PREFIXES) and len(apts) >= 2
            if not serie_vera:
                # Flag senza una serie vera: si toglie solo il flag
                for apt in apts:
                    apt.is_recurring = False
                    apt.recurrence_group_id = None
                    updated.append(dict(_summary_row(apt), action="Flag rimosso (appuntamento singolo)"))
            else:
                apts.sort(key=lambda a: (a.date, a.start_time))
                primo, altri = apts[0], apts[1:]
                primo.is_recurring = False
                primo.recurrence_group_id = None
                kept.append(_summary_row(primo))
                updated.append(dict(_summary_row(primo), action="Primo della serie mantenuto"))
                for apt in altri:
                    deleted.append(_summary_row(apt))
                    db.delete(apt)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Errore processando gruppo {group_id}: {e}")
            results["errors"].append({"group": group_id, "error": str(e)})
            continue
        results["kept"].extend(kept)
        results["deleted"].extend(deleted)
        results["updated"].extend(updated)

    summary = {
        "kept": len(results["kept"]),
        "deleted": len(results["deleted"]),
        "updated": len(results["updated"]),
        "totalGroups": len(gruppi),
    }
    logger.info(
        f"✨ Completato: {summary['kept']} mantenuti, {summary['deleted']} eliminati, {summary['updated']} aggiornati"
    )
    return dict(results, summary=summary)


def migrate_recurring(db, include_service=False):
    """Riconosce le serie settimanali nei dati esistenti e assegna loro un gruppo."""
    logger.info("🔄 Inizio migrazione appuntamenti ricorrenti...")
    appuntamenti = db.query(A).order_by(A.client_name, A.employee_id, A.start_time, A.date).all()
    results = {"series": [], "skipped": [], "rejected": [], "errors": []}
    aggiornati = 0

    for candidato in detect_series(appuntamenti, include_service=include_service):
        descrizione = {
            "client": candidato.key.client_name,
            "employee_id": candidato.key.employee_id,
            "time": format_time(candidato.key.start_time),
            "appointments": len(candidato.members),
            "gaps": candidato.gaps,
        }
        if not candidato.is_recurring:
            results["rejected"].append(descrizione)
            continue
        if any(apt.recurrence_group_id for apt in candidato.members):
            results["skipped"].append(descrizione)
            continue

        group_id = new_group_id("migrated")
        try:
            for apt in candidato.members:
                apt.recurrence_group_id = group_id
                apt.is_recurring = True
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Errore migrando la serie di {candidato.key.client_name}: {e}")
            results["errors"].append(dict(descrizione, error=str(e)))
            continue

        aggiornati += len(candidato.members)
        results["series"].append(dict(descrizione, group_id=group_id))
        logger.info(
            f"✅ Serie ricorrente trovata: {candidato.key.client_name} ({len(candidato.members)} appuntamenti)"
        )

    logger.info(f"✨ Migrazione completata: {len(results['series'])} serie, {aggiornati} appuntamenti aggiornati")
    return dict(results, updated=aggiornati)


def fix_recurring_flag(db):
    """Rimette ``is_recurring`` sugli appuntamenti che hanno un gruppo ma non il flag."""
    righe = (
        db.query(A)
        .filter(A.recurrence_group_id.isnot(None), or_(A.is_recurring.is_(False), A.is_recurring.is_(None)))
        .all()
    )
    try:
        for apt in righe:
            apt.is_recurring = True
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    logger.info(f"✨ Flag is_recurring aggiornato su {len(righe)} appuntamenti")
    return [_summary_row(apt) for apt in righe]


def debug_recurrences(db, today):
    flagged = _flagged_query(db).limit(100).all()
    totale = db.query(func.count(A.id)).scalar() or 0

    gruppi = {}
    for apt in flagged:
        gruppi.setdefault(apt.recurrence_group_id or "NESSUN_GRUPPO", []).append(_summary_row(apt))

    # Stesso cliente, orario e servizio almeno due volte negli ultimi sei mesi
    conteggio = func.count(A.id).label("count")
    potenziali = (
        db.query(A.client_name, A.start_time, A.service_type, conteggio)
        .filter(A.date >= today - timedelta(days=182))
        .group_by(A.client_name, A.start_time, A.service_type)
        .having(func.count(A.id) >= 2)
        .order_by(desc("count"))
        .limit(20)
        .all()
    )
    dettagli = []
    for client_name, start_time, service_type, count in potenziali:
        righe = (
            db.query(A)
            .filter(A.client_name == client_name, A.start_time == start_time, A.service_type == service_type)
            .order_by(A.date)
            .limit(10)
            .all()
        )
        dettagli.append(
            {
                "client": client_name,
                "time": format_time(start_time),
                "service_type": service_type,
                "count": count,
                "appointments": [_summary_row(apt) for apt in righe],
            }
        )

    return {
        "totalAppointments": totale,
        "recurringAppointments": len(flagged),
        "groups": len(gruppi),
        "groupsDetail": gruppi,
        "potentialRecurrences": dettagli,
    }
