# criar_admin.py
# Cria (ou reativa) o usuário administrador da clínica.
#   ADMIN_EMAIL=... ADMIN_PASSWORD=... python criar_admin.py
import os

import structlog
from sqlmodel import Session, select

from clinica_core.config import LOG_LEVEL
from clinica_core.db.conexion import engine, init_db
from clinica_core.db.modelos import Papel, Usuario
from clinica_core.logging_config import configure_logging
from clinica_core.security import get_password_hash

logger = structlog.get_logger(__name__)


def garantir_admin(session: Session, email: str, senha: str, nome: str = "Administração") -> Usuario:
    email = email.strip().lower()
    user = session.exec(select(Usuario).where(Usuario.email == email)).first()
    evento = "admin_reativado" if user else "admin_criado"
    if user is None:
        user = Usuario(email=email, nome=nome, password_hash="")

    user.password_hash = get_password_hash(senha)
    user.papel = Papel.admin
    user.ativo = True
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info(evento, usuario_id=user.id, email=user.email)
    return user


def main():
    configure_logging(level=LOG_LEVEL)
    init_db()
    with Session(engine, expire_on_commit=False) as session:
        garantir_admin(
            session,
            os.getenv("ADMIN_EMAIL", "admin@clinica.com"),
            os.getenv("ADMIN_PASSWORD", "admin"),
            os.getenv("ADMIN_NOME", "Administração"),
        )


if __name__ == "__main__":
    main()
