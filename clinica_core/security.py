# clinica_core/security.py
# Senhas (pbkdf2) e tokens JWT dos usuários da clínica

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import Session

from clinica_core.config import ACCESS_MIN, SECRET_KEY
from clinica_core.db.conexion import get_session
from clinica_core.db.modelos import Papel, Usuario


ALGORITMO = "HS256"

cripto = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

oauth2 = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

# Quem pode o quê nos routers
EQUIPE = (Papel.admin, Papel.recepcao)
SO_ADMIN = (Papel.admin,)


def get_password_hash(senha: str) -> str:
    return cripto.hash(senha)


def verify_password(senha: str, hash_salvo: str) -> bool:
    return cripto.verify(senha, hash_salvo)


def create_access_token(usuario: Usuario, minutos: int = ACCESS_MIN) -> str:
    """
    Token de acesso com o id do usuário em `sub` e o papel em `papel`.
    O papel vai só como informação para o front; a permissão é sempre
    conferida contra o banco.
    """
    agora = datetime.now(timezone.utc)
    claims = {
        "sub": str(usuario.id),
        "email": usuario.email,
        "papel": usuario.papel.value if isinstance(usuario.papel, Papel) else usuario.papel,
        "iat": agora,
        "exp": agora + timedelta(minutes=minutos),
    }
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITMO)


def _usuario_do_token(token: str) -> Optional[int]:
    try:
        claims = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITMO])
    except JWTError:
        return None
    try:
        return int(claims.get("sub"))
    except (TypeError, ValueError):
        return None


def get_current_user(
    token: str = Depends(oauth2),
    session: Session = Depends(get_session),
) -> Usuario:
    nao_autenticado = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Sessão inválida ou expirada. Entre novamente.",
        headers={"WWW-Authenticate": "Bearer"},
    )
    usuario_id = _usuario_do_token(token)
    if usuario_id is None:
        raise nao_autenticado

    user = session.get(Usuario, usuario_id)
    if not user or not user.ativo:
        raise nao_autenticado
    return user


def require_role(*papeis: Papel) -> Callable:
    """Dependência que barra quem não tem um dos `papeis`."""
    def dep(user: Usuario = Depends(get_current_user)) -> Usuario:
        if papeis and user.papel not in papeis:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Seu perfil não tem acesso a esta operação.",
            )
        return user

    return dep
