# retail_api/main.py
# type: ignore

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from retail_api.core import config
from retail_api.database import Base, SessionLocal, engine

# ***************************************************************
# 1. Importar todos los modelos para que SQLAlchemy los registre
# ***************************************************************
import retail_api.models.auth  # Role, User, UserCompany, UserBranch
import retail_api.models.platform  # Company, Branch
import retail_api.models.inventory  # ItemGroup, Item, StockTransfer

# ***************************************************************
# 2. Importar los Routers de API
# ***************************************************************
from retail_api.api.v1.endpoints import auth
from retail_api.api.v1.endpoints import branches
from retail_api.api.v1.endpoints import context
from retail_api.api.v1.endpoints import item_groups
from retail_api.api.v1.endpoints import items
from retail_api.api.v1.endpoints import platform
from retail_api.api.v1.endpoints import roles
from retail_api.api.v1.endpoints import users
from retail_api.services.permissions import seed_default_roles

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def create_tables():
    """Crea todas las tablas de la base de datos si no existen."""
    Base.metadata.create_all(bind=engine)


def seed_data():
    """Siembra los roles predeterminados (idempotente)."""
    db = SessionLocal()
    try:
        seed_default_roles(db)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if config.CREATE_TABLES_ON_STARTUP:
        create_tables()
    seed_data()
    logger.info("Retail API lista.")
    yield


# Inicializar la aplicación FastAPI
app = FastAPI(
    title="Retail Inventory Backend API",
    version="v1",
    description="Backend multi-compañía de inventario: compañías, sucursales, artículos, roles y usuarios.",
    lifespan=lifespan,
)

# ***************************************************************
# 3. Incluir los Routers
# ***************************************************************

# Router de Autenticación
app.include_router(auth.router, tags=["Auth"], prefix="/api/v1/auth")

# Flujo de selección de compañía/sucursal
app.include_router(context.router, tags=["Context"], prefix="/api/v1/context")

# Routers de Plataforma (compañías y sucursales)
app.include_router(platform.router, tags=["Platform"], prefix="/api/v1/platform")

# Transferencias entre sucursales
app.include_router(branches.router, tags=["Branches"], prefix="/api/v1/branches")

# Inventario
app.include_router(items.router, tags=["Items"], prefix="/api/v1/items")
app.include_router(item_groups.router, tags=["Item Groups"], prefix="/api/v1/item-groups")

# Roles y permisos
app.include_router(roles.router, tags=["Roles"], prefix="/api/v1/roles")

# Administración de usuarios
app.include_router(users.router, tags=["Users"], prefix="/api/v1/users")
