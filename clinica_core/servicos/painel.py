# clinica_core/servicos/painel.py
from __future__ import annotations

from typing import Any, Dict, List, Optional
from datetime import date, timedelta

from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from clinica_core.config import ALERTA_DIAS
from clinica_core.db.conexion import get_session
from clinica_core.db.modelos import (
    Atendimento,
    MetodoPagamento,
    Paciente,
    Parcela,
    StatusAtendimento,
    is_realizado,
)
from clinica_core.regras.apuracao import limites_do_mes, realizados
from clinica_core.regras.agenda import STATUS_LIVRES
from clinica_core.regras.pagamentos import somar_meses
from clinica_core.security import EQUIPE, require_role
from clinica_core.servicos.relatorios import resumo_financeiro

router = APIRouter()

# (palavras no nome do procedimento, meses mínimo, meses máximo)
JANELAS_RETORNO = [
    (("toxina", "botox"), 4, 7),
    (("preenchimento", "filler"), 10, 14),
]


def alertas_pagamento(parcelas: List[Parcela], hoje: date, dias: int) -> List[Dict[str, Any]]:
    """
    Agendamentos de pagamento ainda pendentes que vencem até hoje + `dias`
    (os já vencidos entram também), do mais próximo para o mais distante.
    """
    limite = hoje + timedelta(days=dias)
    pendentes = [
        p for p in parcelas
        if not p.is_received
        and p.method == MetodoPagamento.agendamento.value
        and p.due_date <= limite
    ]
    pendentes.sort(key=lambda p: (p.due_date, p.id or 0))
    return [
        {
            "id": p.id,
            "appointment_id": p.appointment_id,
            "patient_name": p.patient_name,
            "value": p.value,
            "due_date": p.due_date.isoformat(),
            "dias": (p.due_date - hoje).days,
            "vencida": p.due_date < hoje,
        }
        for p in pendentes
    ]


def _janela_do_procedimento(nomes: List[str]):
    for chaves, minimo, maximo in JANELAS_RETORNO:
        if any(c in n.lower() for n in nomes for c in chaves):
            return minimo, maximo
    return None


def lista_recuperacao(
    pacientes: List[Paciente],
    atendimentos: List[Atendimento],
    hoje: date,
) -> List[Dict[str, Any]]:
    """
    Pacientes que estão na hora de voltar e ainda não marcaram:
    última visita realizada com toxina há 4-7 meses ou preenchimento há
    10-14 meses, sem nenhum atendimento futuro.
    """
    por_paciente: Dict[int, List[Atendimento]] = {}
    for a in atendimentos:
        por_paciente.setdefault(a.patient_id, []).append(a)

    saida = []
    for p in pacientes:
        deles = por_paciente.get(p.id, [])
        if any(a.date > hoje and a.status not in STATUS_LIVRES for a in deles):
            continue
        feitos = sorted((a for a in deles if is_realizado(a.status)), key=lambda a: a.date)
        if not feitos:
            continue
        ultimo = feitos[-1]
        nomes = [i.get("name") or "" for i in (ultimo.procedures_json or [])]
        if ultimo.service_type_custom:
            nomes.append(ultimo.service_type_custom)
        janela = _janela_do_procedimento(nomes)
        if not janela:
            continue
        minimo, maximo = janela
        if somar_meses(ultimo.date, minimo) <= hoje <= somar_meses(ultimo.date, maximo):
            saida.append(
                {
                    "patient_id": p.id,
                    "patient_name": p.full_name,
                    "whatsapp": p.whatsapp or p.phone,
                    "ultima_visita": ultimo.date.isoformat(),
                    "procedimentos": [n for n in nomes if n],
                }
            )
    return sorted(saida, key=lambda x: x["ultima_visita"])


@router.get("/")
def painel(
    referencia: Optional[date] = None,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
) -> Dict[str, Any]:
    hoje = referencia or date.today()
    inicio, fim = limites_do_mes(hoje.year, hoje.month)
    janela = hoje + timedelta(days=ALERTA_DIAS)

    do_mes = session.exec(
        select(Atendimento).where(Atendimento.date >= inicio).where(Atendimento.date <= fim)
    ).all()

    pendentes = session.exec(
        select(Parcela).where(Parcela.is_received == False)  # noqa: E712
    ).all()

    proximos = session.exec(
        select(Atendimento, Paciente)
        .where(Atendimento.patient_id == Paciente.id)
        .where(Atendimento.date >= hoje)
        .where(Atendimento.date <= janela)
        .where(Atendimento.status.in_([StatusAtendimento.agendado, StatusAtendimento.confirmado]))
        .order_by(Atendimento.date.asc(), Atendimento.time.asc())
    ).all()

    pacientes = session.exec(select(Paciente)).all()
    aniversariantes = [
        {"id": p.id, "full_name": p.full_name, "whatsapp": p.whatsapp or p.phone}
        for p in pacientes
        if p.birth_date and (p.birth_date.month, p.birth_date.day) == (hoje.month, hoje.day)
    ]

    todos = session.exec(select(Atendimento)).all()

    return {
        "referencia": hoje.isoformat(),
        "resumo_mes": resumo_financeiro(session, inicio, fim),
        "atendimentos_realizados": len(realizados(do_mes, inicio, fim)),
        "alertas_pagamento": alertas_pagamento(pendentes, hoje, ALERTA_DIAS),
        "aniversariantes": aniversariantes,
        "proximos": [
            {
                "id": a.id,
                "date": a.date.isoformat(),
                "time": a.time,
                "status": a.status,
                "patient_name": p.full_name,
            }
            for a, p in proximos
        ],
        "recuperacao": lista_recuperacao(pacientes, todos, hoje),
    }
