from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from sportshub.config import settings


def enable_sqlite_savepoints(sqlite_engine: Engine, immediate: bool = False) -> Engine:
    """
    pysqlite no emite BEGIN por su cuenta de forma fiable, lo que rompe los
    SAVEPOINT que usa el barrido. Se delega el BEGIN a SQLAlchemy.

    SQLite ignora SELECT ... FOR UPDATE. Con immediate=True cada transacción
    toma el bloqueo de escritura al empezar, así que dos transacciones que
    escriben se serializan igual que con el bloqueo de fila en PostgreSQL.
    """
    @event.listens_for(sqlite_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE" if immediate else "BEGIN")

    return sqlite_engine


connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(settings.DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)
if engine.dialect.name == "sqlite":
    enable_sqlite_savepoints(engine, immediate=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session):
    """
    Ejecuta un bloque como una única transacción: commit al salir,
    rollback ante cualquier excepción (que se vuelve a lanzar).
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
