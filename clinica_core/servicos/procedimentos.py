# clinica_core/servicos/procedimentos.py
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from clinica_core.db.conexion import get_session, obter, transacao
from clinica_core.db.modelos import Procedimento
from clinica_core.security import EQUIPE, SO_ADMIN, require_role

router = APIRouter()


class ProcedimentoIn(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    has_variable_price: bool = False
    default_price: float = Field(default=0, ge=0)
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    is_active: bool = True


@router.get("/", response_model=List[Procedimento])
def listar_procedimentos(
    incluir_inativos: bool = False,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    q = select(Procedimento)
    if not incluir_inativos:
        q = q.where(Procedimento.is_active == True)  # noqa: E712
    return session.exec(q.order_by(Procedimento.name.asc())).all()


@router.get("/{procedimento_id}", response_model=Procedimento)
def obter_procedimento(
    procedimento_id: int,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    return obter(session, Procedimento, procedimento_id, "Procedimento não encontrado.")


@router.post("/", response_model=Procedimento, status_code=status.HTTP_201_CREATED)
def criar_procedimento(
    payload: ProcedimentoIn,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*SO_ADMIN)),
):
    novo = Procedimento(**payload.model_dump())
    with transacao(session, "criar_procedimento"):
        session.add(novo)
    session.refresh(novo)
    return novo


@router.put("/{procedimento_id}", response_model=Procedimento)
def atualizar_procedimento(
    procedimento_id: int,
    payload: ProcedimentoIn,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*SO_ADMIN)),
):
    procedimento = obter(session, Procedimento, procedimento_id, "Procedimento não encontrado.")
    for campo, valor in payload.model_dump(exclude_unset=True).items():
        setattr(procedimento, campo, valor)
    with transacao(session, "atualizar_procedimento"):
        session.add(procedimento)
    session.refresh(procedimento)
    return procedimento


@router.delete("/{procedimento_id}", status_code=status.HTTP_204_NO_CONTENT)
def excluir_procedimento(
    procedimento_id: int,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*SO_ADMIN)),
):
    procedimento = obter(session, Procedimento, procedimento_id, "Procedimento não encontrado.")
    # Baixa lógica: atendimentos antigos guardam o nome no JSON
    procedimento.is_active = False
    with transacao(session, "excluir_procedimento"):
        session.add(procedimento)
    return
