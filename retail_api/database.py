# retail_api/database.py

import logging
import sys

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from retail_api.core.config import DATABASE_URL

logger = logging.getLogger(__name__)

if DATABASE_URL is None:
    logger.critical("FATAL ERROR: La variable de entorno 'DATABASE_URL' no se encontró.")
    sys.exit(1)

# SQLite (tests/desarrollo local) necesita compartir la conexión entre hilos del threadpool
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=connect_args)

# Una sesión por request (ver get_db)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Clase base de la que heredan todos los modelos/tablas.
Base = declarative_base()


def get_db():
    """Provee una sesión de base de datos a un endpoint de FastAPI."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
