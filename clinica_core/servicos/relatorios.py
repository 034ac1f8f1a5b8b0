# clinica_core/servicos/relatorios.py
from __future__ import annotations

from collections import Counter
from typing import Any, Dict, List, Optional
from datetime import date

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session, select

from clinica_core.db.conexion import get_session, obter
from clinica_core.db.modelos import (
    Atendimento,
    Despesa,
    MovimentoEstoque,
    Paciente,
    Parcela,
    TipoAtendimento,
    TipoMovimento,
)
from clinica_core.regras.apuracao import (
    LinhaExtrato,
    ResumoFinanceiro,
    a_receber,
    apurar,
    extrato,
    realizados,
)
from clinica_core.security import EQUIPE, SO_ADMIN, require_role


router = APIRouter()


class LinhaProcedimento(BaseModel):
    name: str
    quantidade: int
    receita: float
    ticket_medio: float


class LinhaMaterial(BaseModel):
    name: str
    quantidade: float
    custo_total: float


# --------- Consultas ---------

def _atendimentos(
    session: Session,
    inicio: Optional[date],
    fim: Optional[date],
    paciente_id: Optional[int] = None,
) -> List[Atendimento]:
    q = select(Atendimento)
    if paciente_id is not None:
        # todos os atendimentos do paciente: as parcelas recebidas no
        # período podem ser de atendimentos anteriores
        return session.exec(q.where(Atendimento.patient_id == paciente_id)).all()
    if inicio:
        q = q.where(Atendimento.date >= inicio)
    if fim:
        q = q.where(Atendimento.date <= fim)
    return session.exec(q).all()


def _parcelas_recebidas(session: Session, inicio: Optional[date], fim: Optional[date]) -> List[Parcela]:
    q = select(Parcela).where(Parcela.is_received == True)  # noqa: E712
    if inicio:
        q = q.where(Parcela.received_date >= inicio)
    if fim:
        q = q.where(Parcela.received_date <= fim)
    return session.exec(q).all()


def _despesas_pagas(session: Session, inicio: Optional[date], fim: Optional[date]) -> List[Despesa]:
    q = select(Despesa).where(Despesa.is_paid == True)  # noqa: E712
    if inicio:
        q = q.where(Despesa.paid_date >= inicio)
    if fim:
        q = q.where(Despesa.paid_date <= fim)
    return session.exec(q).all()


def resumo_financeiro(
    session: Session,
    inicio: Optional[date] = None,
    fim: Optional[date] = None,
    paciente_id: Optional[int] = None,
) -> ResumoFinanceiro:
    return apurar(
        _atendimentos(session, inicio, fim, paciente_id),
        _parcelas_recebidas(session, inicio, fim),
        _despesas_pagas(session, inicio, fim) if paciente_id is None else [],
        inicio,
        fim,
        paciente_id,
    )


# --------- Financeiro ---------

@router.get("/financeiro", response_model=ResumoFinanceiro)
def relatorio_financeiro(
    inicio: Optional[date] = None,
    fim: Optional[date] = None,
    paciente_id: Optional[int] = None,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*SO_ADMIN)),
):
    if paciente_id is not None:
        obter(session, Paciente, paciente_id, "Paciente não encontrado.")
    return resumo_financeiro(session, inicio, fim, paciente_id)


@router.get("/extrato", response_model=List[LinhaExtrato])
def relatorio_extrato(
    inicio: Optional[date] = None,
    fim: Optional[date] = None,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*SO_ADMIN)),
):
    atendimentos = _atendimentos(session, inicio, fim)
    ids = sorted({a.patient_id for a in atendimentos})
    nomes: Dict[int, str] = {}
    if ids:
        pp = session.exec(select(Paciente).where(Paciente.id.in_(ids))).all()
        nomes = {p.id: p.full_name for p in pp}
    return extrato(atendimentos, _parcelas_recebidas(session, inicio, fim), nomes, inicio, fim)


@router.get("/a-receber", response_model=List[Parcela])
def relatorio_a_receber(
    inicio: Optional[date] = None,
    fim: Optional[date] = None,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    q = select(Parcela).where(Parcela.is_received == False)  # noqa: E712
    return a_receber(session.exec(q).all(), inicio, fim)


# --------- Paciente ---------

@router.get("/paciente/{paciente_id}")
def relatorio_paciente(
    paciente_id: int,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
) -> Dict[str, Any]:
    """
    Histórico do paciente:
    - visitas realizadas e total investido (soma dos procedimentos)
    - custo de material pelos movimentos de estoque
    - procedimento mais feito e os 5 materiais mais usados
    - intervalo médio entre retornos, em dias
    """
    paciente = obter(session, Paciente, paciente_id, "Paciente não encontrado.")
    feitos = sorted(
        realizados(_atendimentos(session, None, None, paciente.id)),
        key=lambda a: a.date,
    )
    ids = [a.id for a in feitos]

    movimentos: List[MovimentoEstoque] = []
    if ids:
        movimentos = session.exec(
            select(MovimentoEstoque)
            .where(MovimentoEstoque.appointment_id.in_(ids))
            .where(MovimentoEstoque.type == TipoMovimento.saida)
        ).all()

    investido = round(sum(float(a.total_amount or 0) for a in feitos), 2)
    custo = round(sum(float(m.total_cost or 0) for m in movimentos), 2)

    procedimentos = Counter(
        p.get("name") for a in feitos for p in (a.procedures_json or []) if p.get("name")
    )
    materiais: Counter = Counter()
    for m in movimentos:
        materiais[m.material_name or f"Material #{m.material_id}"] += float(m.quantity or 0)

    intervalos = [(b.date - a.date).days for a, b in zip(feitos, feitos[1:])]

    return {
        "paciente": {"id": paciente.id, "full_name": paciente.full_name},
        "visitas": len(feitos),
        "total_investido": investido,
        "custo_materiais": custo,
        "lucro": round(investido - custo, 2),
        "procedimento_favorito": procedimentos.most_common(1)[0][0] if procedimentos else None,
        "top_materiais": [
            {"name": nome, "quantidade": qtd} for nome, qtd in materiais.most_common(5)
        ],
        "intervalo_medio_dias": round(sum(intervalos) / len(intervalos), 1) if intervalos else None,
        "ultima_visita": feitos[-1].date.isoformat() if feitos else None,
    }


# --------- Procedimentos, materiais e perfil ---------

@router.get("/procedimentos", response_model=List[LinhaProcedimento])
def relatorio_procedimentos(
    inicio: Optional[date] = None,
    fim: Optional[date] = None,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*SO_ADMIN)),
):
    dados: Dict[str, Dict[str, float]] = {}
    for a in realizados(_atendimentos(session, inicio, fim), inicio, fim):
        for p in a.procedures_json or []:
            nome = p.get("name") or "Sem nome"
            linha = dados.setdefault(nome, {"quantidade": 0, "receita": 0.0})
            linha["quantidade"] += 1
            linha["receita"] += float(p.get("value") or 0)

    filas = [
        LinhaProcedimento(
            name=nome,
            quantidade=int(d["quantidade"]),
            receita=round(d["receita"], 2),
            ticket_medio=round(d["receita"] / d["quantidade"], 2),
        )
        for nome, d in dados.items()
    ]
    return sorted(filas, key=lambda f: (-f.receita, f.name))


@router.get("/materiais", response_model=List[LinhaMaterial])
def relatorio_materiais(
    inicio: Optional[date] = None,
    fim: Optional[date] = None,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*SO_ADMIN)),
):
    """
    Consumo de material nos atendimentos (movimentos de saída ligados a um
    atendimento), pela data do movimento.
    """
    q = (
        select(MovimentoEstoque)
        .where(MovimentoEstoque.type == TipoMovimento.saida)
        .where(MovimentoEstoque.appointment_id != None)  # noqa: E711
    )
    if inicio:
        q = q.where(MovimentoEstoque.date >= inicio)
    if fim:
        q = q.where(MovimentoEstoque.date <= fim)

    dados: Dict[str, Dict[str, float]] = {}
    for m in session.exec(q).all():
        nome = m.material_name or f"Material #{m.material_id}"
        linha = dados.setdefault(nome, {"quantidade": 0.0, "custo_total": 0.0})
        linha["quantidade"] += float(m.quantity or 0)
        linha["custo_total"] += float(m.total_cost or 0)

    filas = [
        LinhaMaterial(name=nome, quantidade=d["quantidade"], custo_total=round(d["custo_total"], 2))
        for nome, d in dados.items()
    ]
    return sorted(filas, key=lambda f: (-f.custo_total, f.name))


@router.get("/perfil")
def relatorio_perfil(
    inicio: Optional[date] = None,
    fim: Optional[date] = None,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*SO_ADMIN)),
) -> Dict[str, Any]:
    """
    Perfil do público atendido: por gênero, por canal de origem e
    novos x recorrentes.
    """
    feitos = realizados(_atendimentos(session, inicio, fim), inicio, fim)
    ids = sorted({a.patient_id for a in feitos})
    pacientes: Dict[int, Paciente] = {}
    if ids:
        pacientes = {p.id: p for p in session.exec(select(Paciente).where(Paciente.id.in_(ids))).all()}

    def agrupar(chave) -> List[Dict[str, Any]]:
        grupos: Dict[str, Dict[str, Any]] = {}
        for a in feitos:
            p = pacientes.get(a.patient_id)
            nome = (chave(p) if p else None) or "Não informado"
            g = grupos.setdefault(nome, {"grupo": nome, "visitas": 0, "pacientes": set(), "receita": 0.0})
            g["visitas"] += 1
            g["pacientes"].add(a.patient_id)
            g["receita"] += float(a.total_amount or 0)
        return [
            {
                "grupo": g["grupo"],
                "visitas": g["visitas"],
                "pacientes": len(g["pacientes"]),
                "receita": round(g["receita"], 2),
            }
            for g in sorted(grupos.values(), key=lambda g: -g["receita"])
        ]

    return {
        "por_genero": agrupar(lambda p: p.gender),
        "por_origem": agrupar(lambda p: p.origin),
        "novos": len([a for a in feitos if a.type == TipoAtendimento.novo]),
        "recorrentes": len([a for a in feitos if a.type == TipoAtendimento.recorrente]),
    }
