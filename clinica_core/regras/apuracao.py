# clinica_core/regras/apuracao.py
"""
Apuração de receita e lucro por período.

Receita = à vista líquido dos atendimentos realizados (pela data do
atendimento) + parcelas recebidas (pela data de recebimento). Crédito e
agendamento nunca entram pelo lado à vista, então nada é contado duas vezes.
"""
from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List, Optional, Set, Tuple

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel

from clinica_core.db.modelos import Atendimento, Despesa, Parcela, is_realizado
from clinica_core.regras.pagamentos import (
    A_VISTA,
    EntradaPagamento,
    valor_liquido,
)


class ResumoFinanceiro(BaseModel):
    cash_revenue: float
    installment_revenue: float
    total_revenue: float
    material_cost: float
    expenses: float
    net_profit: float


class LinhaExtrato(BaseModel):
    data: date
    origem: str  # "a_vista" | "parcela"
    descricao: str
    patient_name: Optional[str] = None
    method: Optional[str] = None
    value: float
    appointment_id: Optional[int] = None


def limites_do_mes(ano: int, mes: int) -> Tuple[date, date]:
    inicio = date(ano, mes, 1)
    return inicio, inicio + relativedelta(months=1, days=-1)


def no_periodo(d: Optional[date], inicio: Optional[date], fim: Optional[date]) -> bool:
    if d is None:
        return False
    if inicio and d < inicio:
        return False
    if fim and d > fim:
        return False
    return True


def entradas(atendimento: Atendimento) -> List[EntradaPagamento]:
    return [EntradaPagamento.model_validate(e) for e in (atendimento.payment_methods_json or [])]


def realizados(
    atendimentos: Iterable[Atendimento],
    inicio: Optional[date] = None,
    fim: Optional[date] = None,
) -> List[Atendimento]:
    return [
        a for a in atendimentos
        if is_realizado(a.status) and no_periodo(a.date, inicio, fim)
    ]


def receita_a_vista(atendimentos, inicio=None, fim=None) -> float:
    total = 0.0
    for a in realizados(atendimentos, inicio, fim):
        total += sum(valor_liquido(e) for e in entradas(a) if e.classe == A_VISTA)
    return round(total, 2)


def receita_parcelas(
    parcelas: Iterable[Parcela],
    inicio: Optional[date] = None,
    fim: Optional[date] = None,
    atendimento_ids: Optional[Set[int]] = None,
) -> float:
    total = sum(
        float(p.value or 0)
        for p in parcelas
        if p.is_received
        and no_periodo(p.received_date, inicio, fim)
        and (atendimento_ids is None or p.appointment_id in atendimento_ids)
    )
    return round(total, 2)


def custo_materiais(atendimentos, inicio=None, fim=None) -> float:
    return round(sum(float(a.cost_amount or 0) for a in realizados(atendimentos, inicio, fim)), 2)


def despesas_pagas(despesas: Iterable[Despesa], inicio=None, fim=None) -> float:
    return round(
        sum(float(d.amount or 0) for d in despesas if d.is_paid and no_periodo(d.paid_date, inicio, fim)),
        2,
    )


def apurar(
    atendimentos: Iterable[Atendimento],
    parcelas: Iterable[Parcela],
    despesas: Iterable[Despesa],
    inicio: Optional[date] = None,
    fim: Optional[date] = None,
    paciente_id: Optional[int] = None,
) -> ResumoFinanceiro:
    """
    Resumo do período. Com `paciente_id`, tudo fica restrito aos atendimentos
    do paciente e as despesas da clínica não são descontadas.
    """
    atendimentos = list(atendimentos)
    ids = None
    if paciente_id is not None:
        atendimentos = [a for a in atendimentos if a.patient_id == paciente_id]
        ids = {a.id for a in atendimentos}

    a_vista = receita_a_vista(atendimentos, inicio, fim)
    de_parcelas = receita_parcelas(parcelas, inicio, fim, ids)
    custo = custo_materiais(atendimentos, inicio, fim)
    gastos = 0.0 if paciente_id is not None else despesas_pagas(despesas, inicio, fim)
    total = round(a_vista + de_parcelas, 2)

    return ResumoFinanceiro(
        cash_revenue=a_vista,
        installment_revenue=de_parcelas,
        total_revenue=total,
        material_cost=custo,
        expenses=gastos,
        net_profit=round(total - custo - gastos, 2),
    )


def extrato(
    atendimentos: Iterable[Atendimento],
    parcelas: Iterable[Parcela],
    nomes: Dict[int, str],
    inicio: Optional[date] = None,
    fim: Optional[date] = None,
) -> List[LinhaExtrato]:
    """
    Fluxo de caixa: entradas à vista na data do atendimento e parcelas
    recebidas na data de recebimento, da mais recente para a mais antiga.
    """
    linhas: List[LinhaExtrato] = []

    for a in realizados(atendimentos, inicio, fim):
        for e in entradas(a):
            if e.classe != A_VISTA:
                continue
            linhas.append(
                LinhaExtrato(
                    data=a.date,
                    origem="a_vista",
                    descricao="Pagamento à vista",
                    patient_name=nomes.get(a.patient_id),
                    method=e.method.value,
                    value=round(valor_liquido(e), 2),
                    appointment_id=a.id,
                )
            )

    for p in parcelas:
        if not p.is_received or not no_periodo(p.received_date, inicio, fim):
            continue
        linhas.append(
            LinhaExtrato(
                data=p.received_date,
                origem="parcela",
                descricao=f"Parcela {p.installment_number}/{p.total_installments}",
                patient_name=p.patient_name,
                method=p.method,
                value=round(float(p.value or 0), 2),
                appointment_id=p.appointment_id,
            )
        )

    linhas.sort(key=lambda l: l.data, reverse=True)
    return linhas


def a_receber(
    parcelas: Iterable[Parcela],
    inicio: Optional[date] = None,
    fim: Optional[date] = None,
) -> List[Parcela]:
    pendentes = [
        p for p in parcelas
        if not p.is_received and no_periodo(p.due_date, inicio, fim)
    ]
    return sorted(pendentes, key=lambda p: (p.due_date, p.id or 0))
