from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def create_engine_for(database_url: str, echo: bool = False) -> Engine:
    # Para SQLite, usar configurações especiais
    if database_url.startswith("sqlite"):
        options = {}
        if ":memory:" in database_url:
            # uma única conexão partilhada, senão cada sessão vê uma base vazia
            options["poolclass"] = StaticPool
        return create_engine(
            database_url,
            connect_args={
                "check_same_thread": False,
                "timeout": 20
            },
            echo=echo,
            **options
        )
    return create_engine(database_url, pool_pre_ping=True, echo=echo)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_db_and_tables(engine: Engine):
    """Cria as tabelas no banco de dados"""
    from .models import Job  # noqa: F401  registra o modelo no metadata
    Base.metadata.create_all(bind=engine)


def get_db(request: Request):
    """Dependency para obter sessão do banco de dados"""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
