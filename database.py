import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from config import settings

logger = logging.getLogger(__name__)

# --- URL DEL DATABASE ---
DATABASE_URL = settings.DATABASE_URL

# Correzione automatica per compatibilità
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)


def _engine_options(url):
    if url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        # Database in memoria: una sola connessione condivisa, altrimenti ogni sessione vede un db vuoto
        if url in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool
        return options
    return {
        "pool_pre_ping": True,  # Controlla se la connessione è viva prima di usarla
        "pool_recycle": settings.DB_POOL_RECYCLE,
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
    }


# Creazione del motore di connessione
engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db():
    """Crea le tabelle mancanti."""
    import models  # noqa: F401  registra i modelli su Base.metadata

    Base.metadata.create_all(bind=engine)
    logger.info("✅ Tabelle create")


def seed_superadmin(db):
    """Crea il superadmin iniziale se non esiste ancora."""
    import models
    from security import hash_password

    esiste = db.query(models.User).filter(models.User.username == settings.ADMIN_USERNAME).first()
    if esiste:
        return esiste

    admin = models.User(
        username=settings.ADMIN_USERNAME,
        password_hash=hash_password(settings.ADMIN_PASSWORD),
        role=models.ROLE_SUPERADMIN,
    )
    db.add(admin)
    db.commit()
    logger.info(f"✅ Superadmin creato (username: {settings.ADMIN_USERNAME})")
    return admin


# --- DIPENDENZE ---
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
