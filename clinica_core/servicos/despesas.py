# clinica_core/servicos/despesas.py
from typing import List, Optional
import datetime as dt
from datetime import date

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from clinica_core.db.conexion import get_session, obter, transacao
from clinica_core.db.modelos import Despesa
from clinica_core.security import EQUIPE, SO_ADMIN, require_role

router = APIRouter()


class DespesaIn(BaseModel):
    description: str = Field(min_length=1)
    category: str = "Outros"
    amount: float = Field(ge=0)
    due_date: dt.date
    is_paid: bool = False
    paid_date: Optional[dt.date] = None


def _ajustar_pagamento(despesa: Despesa) -> None:
    if despesa.is_paid and not despesa.paid_date:
        despesa.paid_date = date.today()
    if not despesa.is_paid:
        despesa.paid_date = None


@router.get("/", response_model=List[Despesa])
def listar_despesas(
    inicio: Optional[date] = None,
    fim: Optional[date] = None,
    categoria: Optional[str] = None,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    q = select(Despesa)
    if inicio:
        q = q.where(Despesa.due_date >= inicio)
    if fim:
        q = q.where(Despesa.due_date <= fim)
    if categoria:
        q = q.where(Despesa.category == categoria)
    return session.exec(q.order_by(Despesa.due_date.desc(), Despesa.id.desc())).all()


@router.get("/pendentes", response_model=List[Despesa])
def despesas_pendentes(
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    q = select(Despesa).where(Despesa.is_paid == False)  # noqa: E712
    return session.exec(q.order_by(Despesa.due_date.asc())).all()


@router.post("/", response_model=Despesa, status_code=status.HTTP_201_CREATED)
def criar_despesa(
    payload: DespesaIn,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*SO_ADMIN)),
):
    nova = Despesa(**payload.model_dump())
    _ajustar_pagamento(nova)
    with transacao(session, "criar_despesa"):
        session.add(nova)
    session.refresh(nova)
    return nova


@router.put("/{despesa_id}", response_model=Despesa)
def atualizar_despesa(
    despesa_id: int,
    payload: DespesaIn,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*SO_ADMIN)),
):
    despesa = obter(session, Despesa, despesa_id, "Despesa não encontrada.")
    for campo, valor in payload.model_dump(exclude_unset=True).items():
        setattr(despesa, campo, valor)
    _ajustar_pagamento(despesa)
    with transacao(session, "atualizar_despesa"):
        session.add(despesa)
    session.refresh(despesa)
    return despesa


@router.patch("/{despesa_id}/paga", response_model=Despesa)
def alternar_paga(
    despesa_id: int,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*SO_ADMIN)),
):
    despesa = obter(session, Despesa, despesa_id, "Despesa não encontrada.")
    despesa.is_paid = not despesa.is_paid
    despesa.paid_date = date.today() if despesa.is_paid else None
    with transacao(session, "alternar_despesa"):
        session.add(despesa)
    session.refresh(despesa)
    return despesa


@router.delete("/{despesa_id}", status_code=status.HTTP_204_NO_CONTENT)
def excluir_despesa(
    despesa_id: int,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*SO_ADMIN)),
):
    despesa = obter(session, Despesa, despesa_id, "Despesa não encontrada.")
    with transacao(session, "excluir_despesa"):
        session.delete(despesa)
    return
