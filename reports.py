"""Conteggi di incassi e spese.

Solo lettura: le funzioni ricevono appuntamenti e spese già caricati e
restituiscono i totali. Gli incassi contano solo gli appuntamenti pagati con
carta o contanti, al prezzo di listino del servizio.
"""

from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional

from catalog import PAID_METHODS, month_bounds, normalize_date, service_price

DEFAULT_EMPLOYEE_SHARE = 0.4


def in_period(giorno, start: date, end: date) -> bool:
    return start <= normalize_date(giorno) <= end


def paid_appointments(appointments: Iterable, start: date, end: date, employee_id: Optional[int] = None) -> List:
    return [
        apt
        for apt in appointments
        if apt.payment_method in PAID_METHODS
        and in_period(apt.date, start, end)
        and (employee_id is None or apt.employee_id == employee_id)
    ]


def revenue(appointments: Iterable) -> float:
    return float(sum(service_price(apt.service_type) for apt in appointments))


def sum_prices(expenses: Iterable) -> float:
    return float(sum(e.price or 0 for e in expenses))


def group_by_type(expenses: Iterable, type_attr: str) -> Dict[str, List[dict]]:
    """Spese raggruppate per tipo, come le mostra la pagina del mese."""
    gruppi: Dict[str, List[dict]] = {}
    for e in expenses:
        gruppi.setdefault(getattr(e, type_attr), []).append(
            {"id": e.id, "price": float(e.price or 0), "reason": e.reason or "", "created_at": e.created_at}
        )
    return gruppi


@dataclass
class MonthlySummary:
    month_key: str
    revenue: float
    employee_share: float
    owner_share: float
    utilities: float
    bar: float
    maintenance: float
    products: float
    expenses_total: float
    net_profit: float
    # Uscite complessive del mese: spese + quota dipendenti
    grand_total: float

    def as_dict(self, ndigits: int = 2):
        return {k: round(v, ndigits) if isinstance(v, float) else v for k, v in asdict(self).items()}


def monthly_summary(
    appointments: Iterable,
    key: str,
    utilities: float = 0.0,
    bar: float = 0.0,
    maintenance: float = 0.0,
    products: float = 0.0,
    employee_share: float = DEFAULT_EMPLOYEE_SHARE,
) -> MonthlySummary:
    start, end = month_bounds(key)
    incasso = revenue(paid_appointments(appointments, start, end))
    quota_dipendenti = incasso * employee_share
    quota_titolare = incasso * (1 - employee_share)
    spese = utilities + bar + maintenance + products
    return MonthlySummary(
        month_key=key,
        revenue=incasso,
        employee_share=quota_dipendenti,
        owner_share=quota_titolare,
        utilities=utilities,
        bar=bar,
        maintenance=maintenance,
        products=products,
        expenses_total=spese,
        net_profit=quota_titolare - spese,
        grand_total=spese + quota_dipendenti,
    )


@dataclass
class DailyEarnings:
    date: date
    total: float = 0.0
    earnings: float = 0.0


@dataclass
class EmployeeEarnings:
    employee_id: int
    start: date
    end: date
    revenue: float = 0.0
    earnings: float = 0.0
    appointments: int = 0
    daily: List[DailyEarnings] = field(default_factory=list)


def employee_earnings(
    appointments: Iterable,
    employee_id: int,
    start: date,
    end: date,
    employee_share: float = DEFAULT_EMPLOYEE_SHARE,
) -> EmployeeEarnings:
    pagati = paid_appointments(appointments, start, end, employee_id)
    giorni: Dict[date, DailyEarnings] = {}
    for apt in pagati:
        giorno = normalize_date(apt.date)
        prezzo = service_price(apt.service_type)
        voce = giorni.setdefault(giorno, DailyEarnings(date=giorno))
        voce.total += prezzo
        voce.earnings += prezzo * employee_share

    incasso = revenue(pagati)
    return EmployeeEarnings(
        employee_id=employee_id,
        start=start,
        end=end,
        revenue=incasso,
        earnings=incasso * employee_share,
        appointments=len(pagati),
        daily=sorted(giorni.values(), key=lambda d: d.date, reverse=True),
    )


def daily_takings(appointments: Iterable, giorno: date) -> Dict[int, dict]:
    """Incasso del giorno per dipendente, diviso tra contanti e carta."""
    risultato: Dict[int, dict] = {}
    for apt in appointments:
        if normalize_date(apt.date) != giorno:
            continue
        voce = risultato.setdefault(apt.employee_id, {"total": 0.0, "cash": 0.0, "card": 0.0, "unpaid": []})
        prezzo = float(service_price(apt.service_type))
        if apt.payment_method == "contanti":
            voce["cash"] += prezzo
            voce["total"] += prezzo
        elif apt.payment_method == "carta":
            voce["card"] += prezzo
            voce["total"] += prezzo
        elif apt.payment_method == "da-pagare":
            voce["unpaid"].append(apt)
    return risultato
