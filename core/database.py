"""Database engine and session management."""

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker, with_loader_criteria

from core.models import Base
from core.settings import get_settings

settings = get_settings()

engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False} if settings.database_url.startswith("sqlite") else {},
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

if settings.database_url.startswith("sqlite"):

    @event.listens_for(engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@event.listens_for(Session, "do_orm_execute")
def _filter_soft_deleted(execute_state):
    if execute_state.execution_options.get("include_deleted", False):
        return
    if execute_state.is_select and not execute_state.is_relationship_load:
        for entity in execute_state.statement.column_descriptions:
            entity_type = entity.get("entity")
            if entity_type is not None and hasattr(entity_type, "deleted_at"):
                execute_state.statement = execute_state.statement.options(
                    with_loader_criteria(
                        entity_type,
                        lambda cls: cls.deleted_at.is_(None),
                        include_aliases=True,
                    )
                )


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _import_models() -> None:
    # Registers every table on Base.metadata before create_all
    from modules.alerts import models as _alerts  # noqa: F401
    from modules.materials import models as _materials  # noqa: F401
    from modules.products import models as _products  # noqa: F401
    from modules.recipes import models as _recipes  # noqa: F401
    from modules.tenants import models as _tenants  # noqa: F401


def init_db() -> None:
    _import_models()
    Base.metadata.create_all(bind=engine)
