# clinica_core/servicos/parcelas.py
from __future__ import annotations

from typing import List, Optional
from datetime import date, datetime, timezone

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from clinica_core.db.conexion import get_session, obter, transacao
from clinica_core.db.modelos import Atendimento, MetodoPagamento, Parcela
from clinica_core.regras.recebimento import (
    eh_parcela_irma,
    localizar_entrada,
    planejar_recebimento,
    substituir_entrada,
)
from clinica_core.security import EQUIPE, require_role

router = APIRouter()
logger = structlog.get_logger(__name__)


class ReceberIn(BaseModel):
    method: MetodoPagamento
    discount_percent: float = Field(default=0, ge=0, le=100)
    installments: int = Field(default=1, ge=1)


@router.get("/", response_model=List[Parcela])
def listar_parcelas(
    atendimento_id: Optional[int] = None,
    pendentes: bool = False,
    vencimento_inicio: Optional[date] = None,
    vencimento_fim: Optional[date] = None,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    q = select(Parcela)
    if atendimento_id:
        q = q.where(Parcela.appointment_id == atendimento_id)
    if pendentes:
        q = q.where(Parcela.is_received == False)  # noqa: E712
    if vencimento_inicio:
        q = q.where(Parcela.due_date >= vencimento_inicio)
    if vencimento_fim:
        q = q.where(Parcela.due_date <= vencimento_fim)
    q = q.order_by(Parcela.due_date.asc(), Parcela.installment_number.asc(), Parcela.id.asc())
    return session.exec(q).all()


@router.post("/{parcela_id}/receber")
def receber_parcela(
    parcela_id: int,
    body: ReceberIn,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    """
    Baixa um agendamento de pagamento com a forma real usada pelo paciente.

    Atualiza a parcela, cria as parcelas 2..N e troca a forma de pagamento
    no atendimento, tudo numa transação só. Parcelas 2..N de uma baixa
    anterior só ficam recebidas.
    """
    parcela = obter(session, Parcela, parcela_id, "Parcela não encontrada.")
    atendimento = obter(session, Atendimento, parcela.appointment_id, "Atendimento não encontrado.")

    pagamentos = list(atendimento.payment_methods_json or [])
    irma = eh_parcela_irma(pagamentos, parcela)
    plano = planejar_recebimento(
        parcela,
        body.method,
        desconto=body.discount_percent,
        n=body.installments,
        hoje=date.today(),
        irma=irma,
    )

    # precisa do valor original da parcela, então vem antes do update
    indice = None if irma else localizar_entrada(pagamentos, parcela)
    novos_pagamentos = pagamentos
    if indice is not None:
        novos_pagamentos = substituir_entrada(
            pagamentos,
            parcela,
            plano.metodo,
            plano.parcelas,
            datetime.now(timezone.utc),
            desconto=plano.desconto,
        )
    elif not irma:
        logger.warning("forma_de_origem_nao_encontrada", parcela_id=parcela.id)

    with transacao(session, "receber_parcela"):
        for campo, valor in plano.atualizacao.items():
            setattr(parcela, campo, valor)
        if indice is not None:
            parcela.payment_entry_index = indice
        session.add(parcela)

        novas = []
        for planejada in plano.novas:
            dados = planejada.model_dump()
            if indice is not None:
                dados["payment_entry_index"] = indice
            nova = Parcela(appointment_id=atendimento.id, **dados)
            session.add(nova)
            novas.append(nova)

        atendimento.payment_methods_json = novos_pagamentos
        session.add(atendimento)

    logger.info(
        "parcela_recebida",
        parcela_id=parcela.id,
        metodo=plano.metodo.value,
        parcelas=plano.parcelas,
    )
    return {
        "parcela": parcela,
        "novas": novas,
        "payment_methods": novos_pagamentos,
    }


@router.patch("/{parcela_id}/recebida", response_model=Parcela)
def alternar_recebida(
    parcela_id: int,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    """
    Marca como recebida hoje ou volta para pendente.
    """
    parcela = obter(session, Parcela, parcela_id, "Parcela não encontrada.")
    with transacao(session, "alternar_parcela"):
        if parcela.is_received:
            parcela.is_received = False
            parcela.received_date = None
        else:
            parcela.is_received = True
            parcela.received_date = date.today()
        session.add(parcela)
    session.refresh(parcela)
    return parcela
