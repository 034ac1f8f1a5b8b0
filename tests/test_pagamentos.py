from datetime import date, datetime

import pytest

from clinica_core.erros import ErroValidacao
from clinica_core.regras.pagamentos import (
    A_VISTA,
    AGENDADO,
    CONCILIADO,
    CREDITO,
    EntradaPagamento,
    ItemMaterial,
    ItemProcedimento,
    calcular_totais,
    classificar,
    dividir_valor,
    formatar_reais,
    gerar_parcelas,
    somar_meses,
)

DIA = date(2026, 3, 10)


def entrada(method, value, **kw):
    return EntradaPagamento(method=method, value=value, **kw)


def test_classificar_metodos():
    assert classificar("Dinheiro") == A_VISTA
    assert classificar("Pix PJ") == A_VISTA
    assert classificar("Cartão de Crédito PF") == CREDITO
    assert classificar("Agendamento de Pagamento") == AGENDADO


def test_somar_meses_no_fim_do_mes():
    assert somar_meses(date(2026, 1, 31), 1) == date(2026, 2, 28)
    assert somar_meses(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert somar_meses(date(2026, 11, 15), 3) == date(2027, 2, 15)


def test_dividir_valor_fecha_com_o_total():
    partes = dividir_valor(100, 3)
    assert partes == [33.33, 33.33, 33.34]
    assert round(sum(partes), 2) == 100


def test_credito_gera_parcelas_recebidas_no_vencimento():
    parcelas = gerar_parcelas([entrada("Cartão de Crédito PJ", 1000, installments=3)], DIA, "Ana")

    assert [p.installment_number for p in parcelas] == [1, 2, 3]
    assert abs(sum(p.value for p in parcelas) - 1000) < 0.01
    for i, p in enumerate(parcelas, start=1):
        assert p.due_date == somar_meses(DIA, i)
        assert p.is_received is True
        assert p.received_date == p.due_date
        assert p.total_installments == 3
        assert p.payment_entry_index == 0


def test_credito_sem_parcelas_informadas_vira_uma():
    parcelas = gerar_parcelas([entrada("Cartão de Crédito PF", 250, installments="")], DIA, "Ana")
    assert len(parcelas) == 1
    assert parcelas[0].value == 250
    assert parcelas[0].due_date == date(2026, 4, 10)


def test_agendamento_gera_uma_parcela_pendente_com_valor_cheio():
    e = entrada("Agendamento de Pagamento", 600, installments=3, discount_percent=10, scheduled_date="2026-04-05")
    parcelas = gerar_parcelas([e], DIA, "Ana")

    assert len(parcelas) == 1
    p = parcelas[0]
    assert p.value == 600
    assert p.installment_number == 1
    assert p.total_installments == 3
    assert p.due_date == date(2026, 4, 5)
    assert p.is_received is False
    assert p.received_date is None


def test_agendamento_sem_data_falha_com_mensagem():
    e = entrada("Agendamento de Pagamento", 150, scheduled_date="")
    with pytest.raises(ErroValidacao) as exc:
        gerar_parcelas([entrada("Dinheiro", 50), e], DIA, "Ana")
    assert "R$ 150,00" in exc.value.mensagem
    assert "data de vencimento" in exc.value.mensagem


def test_a_vista_nao_gera_parcelas():
    assert gerar_parcelas([entrada("Dinheiro", 200), entrada("Pix PF", 100)], DIA, "Ana") == []


def test_ordem_segue_as_formas_de_pagamento():
    parcelas = gerar_parcelas(
        [
            entrada("Agendamento de Pagamento", 100, scheduled_date="2026-05-01"),
            entrada("Dinheiro", 50),
            entrada("Cartão de Crédito PJ", 200, installments=2),
        ],
        DIA,
        "Ana",
    )
    assert [(p.payment_entry_index, p.installment_number) for p in parcelas] == [(0, 1), (2, 1), (2, 2)]


def test_taxa_de_consulta_entra_por_ultimo():
    parcelas = gerar_parcelas([entrada("Cartão de Crédito PJ", 200)], DIA, "Ana", valor_consulta=80)
    consulta = parcelas[-1]
    assert consulta.method == "Consulta"
    assert consulta.value == 80
    assert consulta.is_received is True
    assert consulta.received_date == DIA
    assert consulta.payment_entry_index is None


def test_forma_ja_baixada_nao_gera_nem_conta_como_a_vista():
    e = entrada("Pix PF", 300, reconciled_at=datetime(2026, 4, 1, 12, 0))
    assert e.classe == CONCILIADO
    assert gerar_parcelas([e], DIA, "Ana") == []
    assert calcular_totais([], [], [e]).cash_paid == 0


def test_totais_com_desconto_so_nos_metodos_a_vista():
    totais = calcular_totais(
        [ItemProcedimento(name="Toxina", value=1200), ItemProcedimento(name="Limpeza", value=300)],
        [ItemMaterial(name="Toxina 100U", cost=50, quantity=2)],
        [
            entrada("Dinheiro", 500, discount_percent=10),
            entrada("Cartão de Crédito PJ", 1000, discount_percent=10),
        ],
    )
    assert totais.total_amount == 1500
    assert totais.cost_amount == 100
    assert totais.cash_paid == 450
    assert totais.profit_amount == 350


def test_formatar_reais():
    assert formatar_reais(1234.5) == "R$ 1234,50"


def test_outro_so_vale_na_baixa():
    with pytest.raises(ErroValidacao):
        gerar_parcelas([entrada("Outro", 100)], DIA, "Ana")
    baixada = entrada("Outro", 100, reconciled_at=datetime(2026, 4, 1))
    assert gerar_parcelas([baixada], DIA, "Ana") == []
