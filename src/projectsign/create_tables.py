# create_tables.py
from projectsign.database import engine, Base
from projectsign.utils.logger import get_logger
# Importa todos los modelos para que se registren con Base
from projectsign.modules.auth.models.user import User  # noqa: F401
from projectsign.modules.projects.models.project import Project, Contact  # noqa: F401
from projectsign.modules.forms.models.form import Form  # noqa: F401
from projectsign.modules.forms.models.signing_token import SigningToken  # noqa: F401

logger = get_logger(__name__)


def crear_tablas(bind=None):
    """Crea todas las tablas en la base de datos"""
    logger.info("creating_tables", tables=list(Base.metadata.tables.keys()))
    Base.metadata.create_all(bind=bind or engine)


if __name__ == "__main__":
    crear_tablas()
