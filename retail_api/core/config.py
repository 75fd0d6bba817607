# retail_api/core/config.py

import os
from dotenv import load_dotenv

# ***************************************************************
# Carga de variables de entorno (.env en el directorio de trabajo)
# ***************************************************************
load_dotenv()


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Base de datos (obligatoria, ver retail_api/database.py)
DATABASE_URL = os.getenv("DATABASE_URL")

# JWT
SECRET_KEY = os.getenv("SECRET_KEY", "SUPER_SECRETA_Y_LARGA_CLAVE_QUE_DEBERIA_ESTAR_EN_ENV")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "10"))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))

# Enlaces de acceso de un solo uso (invitaciones)
MAGIC_LINK_EXPIRE_MINUTES = int(os.getenv("MAGIC_LINK_EXPIRE_MINUTES", "60"))
MAGIC_LINK_BASE_URL = os.getenv("MAGIC_LINK_BASE_URL", "http://localhost:5173/auth/magic-link")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CREATE_TABLES_ON_STARTUP = _get_bool("CREATE_TABLES_ON_STARTUP", True)
