# clinica_core/servicos/atendimentos.py
"""
Editor de atendimentos.

Salvar um atendimento mexe em quatro tabelas (appointments, installments,
stock_movements, materials). Toda a validação roda antes da primeira
escrita e as escritas vão juntas em uma única `transacao`.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional
import datetime as dt
from datetime import date

import structlog
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlmodel import Session, select

from clinica_core.db.conexion import get_session, obter, transacao
from clinica_core.db.modelos import (
    Atendimento,
    Material,
    MovimentoEstoque,
    Paciente,
    Parcela,
    StatusAtendimento,
    TipoAtendimento,
    TipoMovimento,
    is_realizado,
)
from clinica_core.erros import ErroValidacao
from clinica_core.regras.agenda import hora_valida
from clinica_core.regras.pagamentos import (
    EntradaPagamento,
    ItemMaterial,
    ItemProcedimento,
    calcular_totais,
    gerar_parcelas,
    validar_pagamentos,
)
from clinica_core.security import EQUIPE, require_role
from clinica_core.servicos.estoque import aplicar_movimento, materiais_por_nome

router = APIRouter()
logger = structlog.get_logger(__name__)

HORA_RETORNO = "09:00"
DURACAO_RETORNO = 30


# --------- Esquemas de entrada ---------

def _hora_ou_none(v):
    if v in ("", None):
        return None
    if not hora_valida(str(v)):
        raise ValueError("horário inválido (use HH:MM)")
    hh, mm = str(v).split(":")[:2]
    return f"{int(hh):02d}:{int(mm):02d}"


class RetornoIn(BaseModel):
    date: dt.date
    time: Optional[str] = None
    service_type_custom: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("time", mode="before")
    @classmethod
    def _hora(cls, v):
        return _hora_ou_none(v)


class AtendimentoIn(BaseModel):
    patient_id: int
    date: dt.date
    time: Optional[str] = None
    end_time: Optional[str] = None
    status: StatusAtendimento = StatusAtendimento.agendado
    type: TipoAtendimento = TipoAtendimento.novo
    service_type_custom: Optional[str] = None
    notes: Optional[str] = None
    procedures: List[ItemProcedimento] = []
    materials: List[ItemMaterial] = []
    payment_methods: List[EntradaPagamento] = []
    consultation_value: float = Field(default=0, ge=0)
    retornos: List[RetornoIn] = []

    @field_validator("time", "end_time", mode="before")
    @classmethod
    def _horas(cls, v):
        return _hora_ou_none(v)


class StatusIn(BaseModel):
    status: StatusAtendimento


# --------- Helpers ---------

def _somar_minutos(hhmm: str, minutos: int) -> str:
    hh, mm = map(int, hhmm.split(":"))
    total = (hh * 60 + mm + minutos) % (24 * 60)
    return f"{total // 60:02d}:{total % 60:02d}"


def _como_entrada(a: Atendimento, novo_status: Optional[StatusAtendimento] = None) -> AtendimentoIn:
    return AtendimentoIn(
        patient_id=a.patient_id,
        date=a.date,
        time=a.time,
        end_time=a.end_time,
        status=novo_status or a.status,
        type=a.type,
        service_type_custom=a.service_type_custom,
        notes=a.notes,
        procedures=a.procedures_json or [],
        materials=a.materials_json or [],
        payment_methods=a.payment_methods_json or [],
        consultation_value=a.consultation_value or 0,
    )


def restaurar_estoque(session: Session, atendimento_id: int) -> None:
    """
    Devolve ao estoque as saídas do atendimento e apaga os movimentos dele.
    """
    movimentos = session.exec(
        select(MovimentoEstoque).where(MovimentoEstoque.appointment_id == atendimento_id)
    ).all()
    for mov in movimentos:
        if mov.type == TipoMovimento.saida:
            material = session.get(Material, mov.material_id)
            if material is not None:
                material.stock_quantity = float(material.stock_quantity or 0) + float(mov.quantity or 0)
                session.add(material)
        session.delete(mov)


def remover_parcelas(session: Session, atendimento_id: int, manter_indices: Iterable[int] = ()) -> None:
    """
    Apaga as parcelas do atendimento, menos as de formas já baixadas
    (`manter_indices`), que não dá para regerar a partir do JSON.
    """
    manter = set(manter_indices)
    parcelas = session.exec(
        select(Parcela).where(Parcela.appointment_id == atendimento_id)
    ).all()
    for p in parcelas:
        if p.payment_entry_index is not None and p.payment_entry_index in manter:
            continue
        session.delete(p)


def excluir_atendimento(session: Session, atendimento: Atendimento) -> None:
    """Apaga o atendimento com parcelas e movimentos (sem commit)."""
    restaurar_estoque(session, atendimento.id)
    remover_parcelas(session, atendimento.id)
    session.flush()
    session.delete(atendimento)


def _validar_materiais(session: Session, materiais: List[ItemMaterial]) -> Dict[str, Material]:
    por_nome = materiais_por_nome(session, [m.name for m in materiais])
    faltando = [m.name for m in materiais if m.name not in por_nome]
    if faltando:
        raise ErroValidacao(f"Material não encontrado no estoque: {', '.join(faltando)}.")
    return por_nome


def salvar_atendimento(
    session: Session,
    body: AtendimentoIn,
    atendimento: Optional[Atendimento] = None,
) -> Atendimento:
    """
    Cria ou atualiza o atendimento e refaz o razão dele.

    Realizado: baixa o estoque e grava as parcelas geradas. Qualquer outro
    status: o atendimento fica sem movimentos e só com as parcelas de
    formas já baixadas, que são dinheiro recebido e só saem ao excluir.
    """
    paciente = obter(session, Paciente, body.patient_id, "Paciente não encontrado.")
    realizado = is_realizado(body.status)

    # --- validação completa antes de escrever ---
    validar_pagamentos(body.payment_methods)
    materiais = _validar_materiais(session, body.materials) if realizado else {}
    totais = calcular_totais(body.procedures, body.materials, body.payment_methods)
    planejadas = (
        gerar_parcelas(body.payment_methods, body.date, paciente.full_name, body.consultation_value)
        if realizado else []
    )
    conciliados = [i for i, e in enumerate(body.payment_methods) if e.reconciled_at is not None]

    with transacao(session, "salvar_atendimento"):
        if atendimento is None:
            atendimento = Atendimento(patient_id=paciente.id, date=body.date)

        atendimento.patient_id = paciente.id
        atendimento.date = body.date
        atendimento.time = body.time
        atendimento.end_time = body.end_time
        atendimento.status = body.status
        atendimento.type = body.type
        atendimento.service_type_custom = body.service_type_custom
        atendimento.notes = body.notes
        atendimento.procedures_json = [p.model_dump() for p in body.procedures]
        atendimento.materials_json = [m.model_dump() for m in body.materials]
        atendimento.payment_methods_json = [e.model_dump(mode="json") for e in body.payment_methods]
        atendimento.consultation_value = body.consultation_value
        atendimento.total_amount = totais.total_amount
        atendimento.cost_amount = totais.cost_amount
        atendimento.profit_amount = totais.profit_amount
        session.add(atendimento)
        session.flush()

        restaurar_estoque(session, atendimento.id)
        remover_parcelas(session, atendimento.id, conciliados)
        session.flush()

        if realizado:
            for item in body.materials:
                aplicar_movimento(
                    session,
                    materiais[item.name],
                    TipoMovimento.saida,
                    item.quantity,
                    data=body.date,
                    motivo="Atendimento",
                    atendimento_id=atendimento.id,
                    paciente=paciente.full_name,
                    custo_unitario=item.cost,
                )
            for planejada in planejadas:
                session.add(Parcela(appointment_id=atendimento.id, **planejada.model_dump()))

        for r in body.retornos:
            hora = r.time or body.time or HORA_RETORNO
            descricao = r.notes or r.service_type_custom or body.service_type_custom or "retorno"
            session.add(
                Atendimento(
                    patient_id=paciente.id,
                    date=r.date,
                    time=hora,
                    end_time=_somar_minutos(hora, DURACAO_RETORNO),
                    status=StatusAtendimento.agendado,
                    type=TipoAtendimento.recorrente,
                    service_type_custom=r.service_type_custom or body.service_type_custom,
                    notes=f"Retorno Automático: {descricao}",
                )
            )

    session.refresh(atendimento)
    logger.info(
        "atendimento_salvo",
        atendimento_id=atendimento.id,
        status=atendimento.status.value,
        parcelas=len(planejadas),
        retornos=len(body.retornos),
    )
    return atendimento


def _detalhe(session: Session, a: Atendimento) -> Dict[str, Any]:
    paciente = session.get(Paciente, a.patient_id)
    parcelas = session.exec(
        select(Parcela)
        .where(Parcela.appointment_id == a.id)
        .order_by(Parcela.due_date.asc(), Parcela.installment_number.asc())
    ).all()
    return {
        **a.model_dump(mode="json"),
        "patient_name": paciente.full_name if paciente else None,
        "installments": [p.model_dump(mode="json") for p in parcelas],
    }


# --------- Endpoints ---------

@router.get("/")
def listar_atendimentos(
    busca: Optional[str] = None,
    data: Optional[date] = None,
    inicio: Optional[date] = None,
    fim: Optional[date] = None,
    paciente_id: Optional[int] = None,
    situacao: Optional[StatusAtendimento] = Query(default=None, alias="status"),
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    q = select(Atendimento, Paciente).where(Atendimento.patient_id == Paciente.id)
    if busca:
        q = q.where(Paciente.full_name.contains(busca))
    if data:
        q = q.where(Atendimento.date == data)
    if inicio:
        q = q.where(Atendimento.date >= inicio)
    if fim:
        q = q.where(Atendimento.date <= fim)
    if paciente_id:
        q = q.where(Atendimento.patient_id == paciente_id)
    if situacao:
        q = q.where(Atendimento.status == situacao)

    q = q.order_by(Atendimento.date.desc(), Atendimento.time.desc(), Atendimento.id.desc())
    return [
        {**a.model_dump(mode="json"), "patient_name": p.full_name}
        for a, p in session.exec(q).all()
    ]


@router.get("/{atendimento_id}")
def obter_atendimento(
    atendimento_id: int,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    a = obter(session, Atendimento, atendimento_id, "Atendimento não encontrado.")
    return _detalhe(session, a)


@router.post("/", status_code=status.HTTP_201_CREATED)
def criar_atendimento(
    body: AtendimentoIn,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    a = salvar_atendimento(session, body)
    return _detalhe(session, a)


@router.put("/{atendimento_id}")
def atualizar_atendimento(
    atendimento_id: int,
    body: AtendimentoIn,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    a = obter(session, Atendimento, atendimento_id, "Atendimento não encontrado.")
    a = salvar_atendimento(session, body, a)
    return _detalhe(session, a)


@router.patch("/{atendimento_id}/status")
def mudar_status(
    atendimento_id: int,
    body: StatusIn,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    """
    Troca só o status, refazendo o razão: entrar em Realizado gera parcelas
    e baixa estoque; sair de Realizado desfaz os dois, menos as parcelas
    de formas já baixadas.
    """
    a = obter(session, Atendimento, atendimento_id, "Atendimento não encontrado.")
    a = salvar_atendimento(session, _como_entrada(a, body.status), a)
    return _detalhe(session, a)


@router.delete("/{atendimento_id}", status_code=status.HTTP_204_NO_CONTENT)
def apagar_atendimento(
    atendimento_id: int,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    a = obter(session, Atendimento, atendimento_id, "Atendimento não encontrado.")
    with transacao(session, "excluir_atendimento"):
        excluir_atendimento(session, a)
    logger.info("atendimento_excluido", atendimento_id=atendimento_id)
    return
