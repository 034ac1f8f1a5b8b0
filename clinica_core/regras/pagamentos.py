# clinica_core/regras/pagamentos.py
"""
Regras de pagamento de um atendimento.

Cada forma de pagamento cai em uma de três classes:

- à vista (dinheiro, pix, débito, parceria, troca): entra direto no lucro
  do atendimento, com desconto quando permitido; não gera parcelas.
- crédito: vira N parcelas mensais já marcadas como recebidas na data de
  vencimento (regime de competência; a operadora garante o repasse).
- agendamento de pagamento: uma única parcela pendente, que só é baixada
  pelo fluxo de recebimento (regras.recebimento). Depois da baixa a forma
  fica marcada com `reconciled_at` e deixa de contar como à vista.

Tudo aqui é puro: recebe dados, devolve o plano. Quem grava é o serviço.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, List, Optional

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel, Field, field_validator

from clinica_core.db.modelos import MetodoPagamento
from clinica_core.erros import ErroValidacao

A_VISTA = "a_vista"
CREDITO = "credito"
AGENDADO = "agendado"
# agendamento já baixado: o razão de parcelas é quem representa o valor
CONCILIADO = "conciliado"

METODOS_CREDITO = {MetodoPagamento.credito_pj, MetodoPagamento.credito_pf}

METODOS_COM_DESCONTO = {
    MetodoPagamento.dinheiro,
    MetodoPagamento.pix_pf,
    MetodoPagamento.pix_pj,
    MetodoPagamento.debito_pj,
    MetodoPagamento.debito_pf,
}

METODOS_PARCELAVEIS = METODOS_CREDITO | {MetodoPagamento.agendamento}

# "Outro" só existe na baixa de um agendamento
METODOS_ATENDIMENTO = [m for m in MetodoPagamento if m != MetodoPagamento.outro]

METODO_CONSULTA = "Consulta"


def classificar(metodo: MetodoPagamento | str) -> str:
    metodo = MetodoPagamento(metodo)
    if metodo in METODOS_CREDITO:
        return CREDITO
    if metodo == MetodoPagamento.agendamento:
        return AGENDADO
    return A_VISTA


def aceita_desconto(metodo: MetodoPagamento | str) -> bool:
    return MetodoPagamento(metodo) in METODOS_COM_DESCONTO


def aceita_parcelas(metodo: MetodoPagamento | str) -> bool:
    return MetodoPagamento(metodo) in METODOS_PARCELAVEIS


def somar_meses(d: date, meses: int) -> date:
    """
    Mesmo dia `meses` meses depois; em meses mais curtos cai no último dia
    (31/01 + 1 mês = 28/02 ou 29/02).
    """
    return d + relativedelta(months=meses)


def formatar_reais(valor: float) -> str:
    return f"R$ {valor:.2f}".replace(".", ",")


def _arredondar(valor: float) -> float:
    return round(valor, 2)


def dividir_valor(total: float, partes: int) -> List[float]:
    """
    Divide `total` em `partes` valores com centavos; a última parte absorve
    a sobra do arredondamento para a soma bater exatamente com o total.
    """
    if partes <= 1:
        return [_arredondar(total)]
    base = _arredondar(total / partes)
    valores = [base] * (partes - 1)
    valores.append(_arredondar(total - base * (partes - 1)))
    return valores


# =========================
# Esquemas
# =========================

class ItemProcedimento(BaseModel):
    name: str = ""
    value: float = Field(default=0, ge=0)


class ItemMaterial(BaseModel):
    name: str
    cost: float = Field(default=0, ge=0)
    quantity: float = Field(default=1, gt=0)


class EntradaPagamento(BaseModel):
    """
    Uma forma de pagamento aplicada ao total do atendimento.
    """
    method: MetodoPagamento
    value: float = Field(default=0, ge=0)
    installments: int = Field(default=1, ge=1)
    discount_percent: float = Field(default=0, ge=0, le=100)
    scheduled_date: Optional[date] = None
    reconciled_at: Optional[datetime] = None

    @field_validator("scheduled_date", mode="before")
    @classmethod
    def _data_vazia(cls, v):
        # O front manda "" quando o campo fica em branco
        if v in ("", None):
            return None
        if isinstance(v, str):
            return v[:10]
        return v

    @field_validator("installments", mode="before")
    @classmethod
    def _parcelas_vazias(cls, v):
        if v in ("", None, 0, "0"):
            return 1
        return v

    @property
    def classe(self) -> str:
        if self.reconciled_at is not None:
            return CONCILIADO
        return classificar(self.method)


class ParcelaPlanejada(BaseModel):
    """
    Parcela a ser gravada; ainda sem appointment_id.
    """
    patient_name: str
    installment_number: int
    total_installments: int
    value: float
    due_date: date
    is_received: bool
    received_date: Optional[date] = None
    method: Optional[str] = None
    payment_entry_index: Optional[int] = None


class TotaisAtendimento(BaseModel):
    total_amount: float
    cost_amount: float
    cash_paid: float
    profit_amount: float


# =========================
# Cálculos
# =========================

def valor_liquido(entrada: EntradaPagamento) -> float:
    """
    Valor efetivamente recebido. Desconto só vale para os métodos à vista
    que o aceitam; crédito e agendamento ficam pelo valor cheio.
    """
    bruto = float(entrada.value or 0)
    if not aceita_desconto(entrada.method):
        return bruto
    desconto = float(entrada.discount_percent or 0)
    return bruto - bruto * (desconto / 100)


def total_a_vista(pagamentos: Iterable[EntradaPagamento]) -> float:
    """
    Soma líquida das formas à vista (exclui crédito e agendamento).
    """
    return sum(valor_liquido(p) for p in pagamentos if p.classe == A_VISTA)


def calcular_totais(
    procedimentos: Iterable[ItemProcedimento],
    materiais: Iterable[ItemMaterial],
    pagamentos: Iterable[EntradaPagamento],
) -> TotaisAtendimento:
    pagamentos = list(pagamentos)
    total_servico = sum(float(p.value or 0) for p in procedimentos)
    custo_materiais = sum(float(m.cost or 0) * float(m.quantity or 1) for m in materiais)
    pago = total_a_vista(pagamentos)
    return TotaisAtendimento(
        total_amount=_arredondar(total_servico),
        cost_amount=_arredondar(custo_materiais),
        cash_paid=_arredondar(pago),
        profit_amount=_arredondar(pago - custo_materiais),
    )


def validar_pagamentos(pagamentos: Iterable[EntradaPagamento]) -> None:
    """
    Barra o salvamento antes de qualquer escrita: todo agendamento de
    pagamento precisa de data de vencimento e "Outro" só vale na baixa.
    """
    for entrada in pagamentos:
        if entrada.classe != CONCILIADO and entrada.method not in METODOS_ATENDIMENTO:
            raise ErroValidacao(f"Forma de pagamento inválida no atendimento: {entrada.method.value}.")
        if entrada.classe == AGENDADO and not entrada.scheduled_date:
            raise ErroValidacao(
                "Selecione a data de vencimento para o Agendamento de "
                f"Pagamento de {formatar_reais(float(entrada.value or 0))}."
            )


def gerar_parcelas(
    pagamentos: List[EntradaPagamento],
    data_atendimento: date,
    nome_paciente: str,
    valor_consulta: float = 0,
) -> List[ParcelaPlanejada]:
    """
    Transforma a lista de formas de pagamento nas parcelas a gravar.

    A ordem de saída segue a ordem das formas de pagamento e, dentro de
    cada uma, o número da parcela. A taxa de consulta (se houver) entra
    por último, já recebida na data do atendimento.
    """
    validar_pagamentos(pagamentos)
    nome = nome_paciente or "Paciente"
    parcelas: List[ParcelaPlanejada] = []

    for indice, entrada in enumerate(pagamentos):
        total = float(entrada.value or 0)
        n = int(entrada.installments or 1)

        if entrada.classe == AGENDADO:
            parcelas.append(
                ParcelaPlanejada(
                    patient_name=nome,
                    installment_number=1,
                    total_installments=n,
                    value=_arredondar(total),
                    due_date=entrada.scheduled_date,
                    is_received=False,
                    received_date=None,
                    method=entrada.method.value,
                    payment_entry_index=indice,
                )
            )
        elif entrada.classe == CREDITO:
            for i, valor in enumerate(dividir_valor(total, n), start=1):
                vencimento = somar_meses(data_atendimento, i)
                parcelas.append(
                    ParcelaPlanejada(
                        patient_name=nome,
                        installment_number=i,
                        total_installments=n,
                        value=valor,
                        due_date=vencimento,
                        is_received=True,
                        received_date=vencimento,
                        method=entrada.method.value,
                        payment_entry_index=indice,
                    )
                )
        # à vista: reconhecido direto nos totais do atendimento

    if valor_consulta and valor_consulta > 0:
        parcelas.append(
            ParcelaPlanejada(
                patient_name=nome,
                installment_number=1,
                total_installments=1,
                value=_arredondar(valor_consulta),
                due_date=data_atendimento,
                is_received=True,
                received_date=data_atendimento,
                method=METODO_CONSULTA,
            )
        )

    return parcelas
