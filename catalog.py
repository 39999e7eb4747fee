"""Listino dei servizi e helper per date/orari."""

from datetime import date, datetime, time, timedelta

# Durata in minuti per tipo di lavorazione
DURATE = {
    "Taglio": 45,
    "Taglio e barba": 60,
    "Taglio, barba e colore": 60,
    "Barba": 25,
    "Taglio baby": 60,
    "Rasatura": 60,
    "Pausa": 60,
}
DURATA_DEFAULT = 30

# Prezzi in euro
PREZZI = {
    "Taglio": 15,
    "Taglio e barba": 20,
    "Taglio, barba e colore": 0,  # TODO: prezzo ancora da definire col titolare
    "Barba": 8,
    "Taglio baby": 13,
    "Rasatura": 10,
    "Pausa": 0,
}

PAYMENT_METHODS = ("carta", "contanti", "scontistica", "da-pagare")
PAID_METHODS = ("carta", "contanti")

UTILITY_TYPES = ("pigione", "acqua", "luce", "spazzatura", "gas")
MAINTENANCE_TYPES = ("ordinaria", "straordinaria")


def duration_minutes(service_type):
    return DURATE.get(service_type, DURATA_DEFAULT)


def service_price(service_type):
    return PREZZI.get(service_type, 0)


def add_minutes(start, minutes):
    """Somma minuti a un orario; non va oltre la mezzanotte."""
    fine = datetime.combine(date.min, start) + timedelta(minutes=minutes)
    if fine.date() > date.min:
        return time(23, 59)
    return fine.time()


def end_time_for(start, service_type):
    return add_minutes(start, duration_minutes(service_type))


def normalize_date(value):
    """Riporta a una data pura: accetta date, datetime o stringhe con timestamp."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value.strip().split("T")[0].split(" ")[0])
    raise ValueError(f"Data non valida: {value!r}")


def parse_time(value):
    """Accetta HH:MM o HH:MM:SS."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    if isinstance(value, str):
        parti = value.strip().split(":")
        if len(parti) in (2, 3):
            return time(int(parti[0]), int(parti[1]))
    raise ValueError(f"Orario non valido: {value!r}")


def format_time(value):
    if isinstance(value, time):
        return value.strftime("%H:%M")
    return value


def month_key(giorno):
    return f"{giorno.year:04d}-{giorno.month:02d}"


def month_bounds(key):
    """Primo e ultimo giorno del mese YYYY-MM."""
    try:
        inizio = datetime.strptime(key, "%Y-%m").date()
    except ValueError:
        raise ValueError(f"Mese non valido: {key!r}")
    if inizio.month == 12:
        prossimo = inizio.replace(year=inizio.year + 1, month=1)
    else:
        prossimo = inizio.replace(month=inizio.month + 1)
    return inizio, prossimo - timedelta(days=1)
