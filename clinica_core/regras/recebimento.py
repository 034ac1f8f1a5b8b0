# clinica_core/regras/recebimento.py
"""
Baixa de um agendamento de pagamento ("Receber pagamento").

Uma parcela pendente passa a recebida e, se a forma escolhida aceita
parcelamento, gera as parcelas irmãs 2..N. Só planeja; o serviço grava
tudo numa única transação.
"""
from __future__ import annotations

from copy import deepcopy
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from clinica_core.db.modelos import MetodoPagamento, Parcela
from clinica_core.erros import ErroConflito, ErroValidacao
from clinica_core.regras.pagamentos import (
    METODOS_CREDITO,
    ParcelaPlanejada,
    aceita_desconto,
    aceita_parcelas,
    dividir_valor,
    somar_meses,
)

# Diferença máxima para considerar dois valores em reais iguais
TOLERANCIA = 0.005


class PlanoRecebimento(BaseModel):
    metodo: MetodoPagamento
    parcelas: int
    desconto: float
    # campos a gravar na própria parcela baixada
    atualizacao: Dict[str, Any]
    novas: List[ParcelaPlanejada]


def _metodo(valor) -> MetodoPagamento:
    try:
        return MetodoPagamento(valor)
    except ValueError:
        raise ErroValidacao("Forma de pagamento inválida.")


def planejar_recebimento(
    parcela: Parcela,
    metodo: MetodoPagamento | str,
    desconto: float = 0,
    n: int = 1,
    hoje: Optional[date] = None,
    irma: bool = False,
) -> PlanoRecebimento:
    """
    Calcula o resultado da baixa de `parcela`.

    - 1ª parcela: valor-base menos o desconto. Vence em hoje + 1 mês quando
      há parcelamento ou é crédito; senão vence e é recebida hoje.
    - Crédito fica recebido na data de vencimento (competência); as demais
      formas parceladas contam a 1ª como recebida hoje.
    - Parcelas 2..N vencem em hoje + i meses, sem desconto, e só nascem
      recebidas no crédito.
    - `irma`: parcela 2..N de um parcelamento já baixado. Só fica recebida
      hoje, com desconto se couber; número, total e vencimento não mudam.
    """
    if parcela.is_received:
        raise ErroConflito("Esta parcela já foi recebida.")

    metodo = _metodo(metodo)
    hoje = hoje or date.today()

    try:
        n = int(1 if n is None else n)
    except (TypeError, ValueError):
        raise ErroValidacao("Número de parcelas inválido.")
    if n < 1:
        raise ErroValidacao("Número de parcelas inválido.")
    if not aceita_parcelas(metodo):
        n = 1

    desconto = float(desconto or 0)
    if desconto < 0 or desconto > 100:
        raise ErroValidacao("Desconto deve estar entre 0 e 100%.")
    if not aceita_desconto(metodo):
        desconto = 0.0

    if irma:
        valor = float(parcela.value or 0)
        return PlanoRecebimento(
            metodo=metodo,
            parcelas=1,
            desconto=desconto,
            atualizacao={
                "value": round(valor - valor * desconto / 100, 2),
                "is_received": True,
                "received_date": hoje,
                "method": metodo.value,
            },
            novas=[],
        )

    credito = metodo in METODOS_CREDITO
    valores = dividir_valor(float(parcela.value or 0), n)
    primeira = round(valores[0] - valores[0] * desconto / 100, 2)

    if n > 1 or credito:
        vencimento = somar_meses(hoje, 1)
        recebimento = vencimento if credito else hoje
    else:
        vencimento = hoje
        recebimento = hoje

    atualizacao = {
        "value": primeira,
        "is_received": True,
        "received_date": recebimento,
        "installment_number": 1,
        "total_installments": n,
        "due_date": vencimento,
        "method": metodo.value,
    }

    novas: List[ParcelaPlanejada] = []
    for i in range(2, n + 1):
        venc = somar_meses(hoje, i)
        novas.append(
            ParcelaPlanejada(
                patient_name=parcela.patient_name,
                installment_number=i,
                total_installments=n,
                value=valores[i - 1],
                due_date=venc,
                is_received=credito,
                received_date=venc if credito else None,
                method=metodo.value,
                payment_entry_index=parcela.payment_entry_index,
            )
        )

    return PlanoRecebimento(
        metodo=metodo,
        parcelas=n,
        desconto=desconto,
        atualizacao=atualizacao,
        novas=novas,
    )


def _eh_agendamento_aberto(entrada: Dict[str, Any]) -> bool:
    return (
        entrada.get("method") == MetodoPagamento.agendamento.value
        and not entrada.get("reconciled_at")
    )


def eh_parcela_irma(pagamentos: List[Dict[str, Any]], parcela: Parcela) -> bool:
    """
    Parcela 2..N de um parcelamento já baixado: a forma de origem já foi
    trocada, então a baixa dela não mexe mais nas formas de pagamento.
    """
    if (parcela.installment_number or 1) > 1:
        return True
    indice = parcela.payment_entry_index
    if indice is None or not 0 <= indice < len(pagamentos):
        return False
    return bool(pagamentos[indice].get("reconciled_at"))


def localizar_entrada(pagamentos: List[Dict[str, Any]], parcela: Parcela) -> Optional[int]:
    """
    Posição da forma de pagamento que originou a parcela.

    Usa o índice gravado na parcela. Só linhas antigas, sem índice, caem na
    busca pelo primeiro agendamento em aberto com o mesmo valor.
    """
    indice = parcela.payment_entry_index
    if indice is not None:
        if 0 <= indice < len(pagamentos) and _eh_agendamento_aberto(pagamentos[indice]):
            return indice
        return None

    for i, entrada in enumerate(pagamentos):
        if not _eh_agendamento_aberto(entrada):
            continue
        if abs(float(entrada.get("value") or 0) - float(parcela.value or 0)) < TOLERANCIA:
            return i
    return None


def substituir_entrada(
    pagamentos: List[Dict[str, Any]],
    parcela: Parcela,
    metodo: MetodoPagamento | str,
    n: int,
    momento: datetime,
    desconto: float = 0,
) -> List[Dict[str, Any]]:
    """
    Devolve uma cópia de `pagamentos` com o agendamento de origem trocado
    pela forma real. Sem correspondência, a lista volta igual.
    """
    metodo = _metodo(metodo)
    novos = deepcopy(list(pagamentos or []))
    indice = localizar_entrada(novos, parcela)
    if indice is None:
        return novos

    original = novos[indice]
    novos[indice] = {
        "method": metodo.value,
        "value": float(original.get("value") or 0),
        "installments": int(n or 1),
        "discount_percent": float(desconto or 0),
        "scheduled_date": None,
        "reconciled_at": momento.isoformat(),
    }
    return novos
