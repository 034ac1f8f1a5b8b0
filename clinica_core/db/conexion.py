# clinica_core/db/conexion.py
from contextlib import contextmanager
from typing import Generator, Iterator

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel, Session, create_engine

from clinica_core.config import DB_URL
from clinica_core.erros import ErroClinica, ErroPersistencia, NaoEncontrado, coagir_id

logger = structlog.get_logger(__name__)

# Necessário para SQLite em modo multi-thread (uvicorn)
connect_args = {"check_same_thread": False} if DB_URL.startswith("sqlite") else {}

engine = create_engine(DB_URL, echo=False, connect_args=connect_args)


def init_db(bind=None) -> None:
    """
    Cria todas as tabelas definidas em db.modelos se não existirem.
    """
    # Import tardio para registrar os modelos antes do create_all
    from clinica_core.db import modelos  # noqa: F401

    SQLModel.metadata.create_all(bind or engine)


def get_session() -> Generator[Session, None, None]:
    """
    Sessão do SQLModel para usar com Depends() no FastAPI.
    expire_on_commit=False para poder serializar depois do commit.
    """
    with Session(engine, expire_on_commit=False) as session:
        yield session


@contextmanager
def transacao(session: Session, operacao: str = "escrita") -> Iterator[Session]:
    """
    Unidade atômica de escrita: tudo o que for feito dentro do bloco
    é confirmado junto ou desfeito junto.

    - Erro de negócio (ErroClinica): rollback e repropaga como está.
    - Erro do banco (SQLAlchemyError): rollback, log e ErroPersistencia.
    - Qualquer outro erro: rollback e repropaga.
    """
    try:
        yield session
        session.commit()
    except ErroClinica:
        session.rollback()
        raise
    except SQLAlchemyError:
        session.rollback()
        logger.error("transacao_falhou", operacao=operacao, exc_info=True)
        raise ErroPersistencia()
    except Exception:
        session.rollback()
        raise


def obter(session: Session, modelo, id_, mensagem: str = "Registro não encontrado."):
    """
    session.get com o id já validado; ausência vira NaoEncontrado (404).
    """
    registro = session.get(modelo, coagir_id(id_))
    if registro is None:
        raise NaoEncontrado(mensagem)
    return registro
