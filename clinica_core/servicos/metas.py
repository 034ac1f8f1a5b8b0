# clinica_core/servicos/metas.py
from __future__ import annotations

from typing import Dict, Iterable, List, Optional
from datetime import date

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from clinica_core.db.conexion import get_session, obter, transacao
from clinica_core.db.modelos import Atendimento, Meta, TipoMeta
from clinica_core.regras.apuracao import limites_do_mes, realizados
from clinica_core.security import EQUIPE, SO_ADMIN, require_role

router = APIRouter()


class MetaIn(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    type: TipoMeta = TipoMeta.faturamento
    target_value: float = Field(gt=0)
    current_value: float = Field(default=0, ge=0)
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2000, le=2100)


class ProgressoMeta(BaseModel):
    meta: Meta
    atual: float
    percentual: float
    atingida: bool


def valor_atual(meta: Meta, atendimentos: Iterable[Atendimento]) -> float:
    """
    Quanto da meta já foi feito no mês, a partir dos atendimentos realizados.
    """
    if meta.type == TipoMeta.outro:
        return float(meta.current_value or 0)

    inicio, fim = limites_do_mes(meta.year, meta.month)
    feitos = realizados(atendimentos, inicio, fim)

    if meta.type == TipoMeta.faturamento:
        return round(sum(float(a.total_amount or 0) for a in feitos), 2)
    if meta.type == TipoMeta.pacientes:
        return float(len({a.patient_id for a in feitos}))
    return float(sum(len(a.procedures_json or []) for a in feitos))


def progresso(meta: Meta, atendimentos: Iterable[Atendimento]) -> ProgressoMeta:
    atual = valor_atual(meta, atendimentos)
    percentual = min(100.0, round(atual / meta.target_value * 100, 1)) if meta.target_value else 0.0
    return ProgressoMeta(
        meta=meta,
        atual=atual,
        percentual=percentual,
        atingida=atual >= meta.target_value,
    )


def _atendimentos_do_mes(session: Session, ano: int, mes: int) -> List[Atendimento]:
    inicio, fim = limites_do_mes(ano, mes)
    q = select(Atendimento).where(Atendimento.date >= inicio).where(Atendimento.date <= fim)
    return session.exec(q).all()


@router.get("/", response_model=List[Meta])
def listar_metas(
    ano: Optional[int] = None,
    mes: Optional[int] = None,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    q = select(Meta)
    if ano:
        q = q.where(Meta.year == ano)
    if mes:
        q = q.where(Meta.month == mes)
    return session.exec(q.order_by(Meta.year.desc(), Meta.month.desc(), Meta.id.asc())).all()


@router.get("/progresso", response_model=List[ProgressoMeta])
def progresso_do_mes(
    ano: Optional[int] = Query(default=None, ge=2000, le=2100),
    mes: Optional[int] = Query(default=None, ge=1, le=12),
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    hoje = date.today()
    ano = ano or hoje.year
    mes = mes or hoje.month
    metas = session.exec(
        select(Meta).where(Meta.year == ano).where(Meta.month == mes).order_by(Meta.id.asc())
    ).all()
    atendimentos = _atendimentos_do_mes(session, ano, mes)
    return [progresso(m, atendimentos) for m in metas]


@router.get("/{meta_id}/progresso", response_model=ProgressoMeta)
def progresso_da_meta(
    meta_id: int,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    meta = obter(session, Meta, meta_id, "Meta não encontrada.")
    return progresso(meta, _atendimentos_do_mes(session, meta.year, meta.month))


@router.post("/", response_model=Meta, status_code=status.HTTP_201_CREATED)
def criar_meta(
    payload: MetaIn,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*SO_ADMIN)),
):
    nova = Meta(**payload.model_dump())
    with transacao(session, "criar_meta"):
        session.add(nova)
    session.refresh(nova)
    return nova


@router.put("/{meta_id}", response_model=Meta)
def atualizar_meta(
    meta_id: int,
    payload: MetaIn,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*SO_ADMIN)),
):
    meta = obter(session, Meta, meta_id, "Meta não encontrada.")
    dados: Dict = payload.model_dump(exclude_unset=True)
    for campo, valor in dados.items():
        setattr(meta, campo, valor)
    with transacao(session, "atualizar_meta"):
        session.add(meta)
    session.refresh(meta)
    return meta


@router.delete("/{meta_id}", status_code=status.HTTP_204_NO_CONTENT)
def excluir_meta(
    meta_id: int,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*SO_ADMIN)),
):
    meta = obter(session, Meta, meta_id, "Meta não encontrada.")
    with transacao(session, "excluir_meta"):
        session.delete(meta)
    return
