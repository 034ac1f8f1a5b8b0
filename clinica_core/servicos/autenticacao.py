# clinica_core/servicos/autenticacao.py
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel
from sqlmodel import Session, select

from clinica_core.config import ACCESS_MIN
from clinica_core.db.conexion import get_session
from clinica_core.db.modelos import Papel, Usuario
from clinica_core.security import (
    create_access_token,
    get_current_user,
    verify_password,
)

router = APIRouter()
logger = structlog.get_logger(__name__)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    papel: Papel


class UsuarioOut(BaseModel):
    id: int
    email: str
    nome: Optional[str] = None
    papel: Papel
    ativo: bool


@router.post("/login", response_model=Token)
def login(
    form: OAuth2PasswordRequestForm = Depends(),
    session: Session = Depends(get_session),
):
    email = form.username.strip().lower()
    user = session.exec(select(Usuario).where(Usuario.email == email)).first()
    if not user or not verify_password(form.password, user.password_hash):
        logger.warning("login_recusado", email=email)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="E-mail ou senha incorretos.",
        )
    if not user.ativo:
        logger.warning("login_usuario_inativo", usuario_id=user.id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Usuário desativado. Fale com a administração da clínica.",
        )

    logger.info("login_ok", usuario_id=user.id, papel=user.papel)
    return Token(
        access_token=create_access_token(user),
        expires_in=ACCESS_MIN * 60,
        papel=user.papel,
    )


@router.get("/me", response_model=UsuarioOut)
def ler_perfil(user: Usuario = Depends(get_current_user)):
    return UsuarioOut(
        id=user.id,
        email=user.email,
        nome=user.nome,
        papel=user.papel,
        ativo=user.ativo,
    )
