from datetime import date, timedelta

from clinica_core.db.modelos import Despesa, Paciente


def _realizado(client, auth, paciente_id, dia, pagamentos, procedimentos=None, materiais=None):
    body = {
        "patient_id": paciente_id,
        "date": dia,
        "status": "Realizado",
        "procedures": procedimentos or [{"name": "Toxina", "value": 500}],
        "materials": materiais or [],
        "payment_methods": pagamentos,
    }
    resp = client.post("/api/atendimentos/", json=body, headers=auth)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_receita_por_periodo(client, auth, session, paciente):
    _realizado(
        client, auth, paciente.id, "2026-03-10",
        [
            {"method": "Dinheiro", "value": 200},
            {"method": "Cartão de Crédito PJ", "value": 300, "installments": 2},
        ],
    )
    session.add(Despesa(description="Aluguel", amount=50, due_date=date(2026, 3, 5), is_paid=True, paid_date=date(2026, 3, 5)))
    session.commit()

    resp = client.get("/api/relatorios/financeiro?inicio=2026-03-01&fim=2026-04-30", headers=auth)
    assert resp.status_code == 200
    resumo = resp.json()
    assert resumo["cash_revenue"] == 200
    assert resumo["installment_revenue"] == 150
    assert resumo["total_revenue"] == 350
    assert resumo["net_profit"] == 300

    maio = client.get("/api/relatorios/financeiro?inicio=2026-05-01&fim=2026-05-31", headers=auth).json()
    assert maio["total_revenue"] == 150

    por_paciente = client.get(
        f"/api/relatorios/financeiro?inicio=2026-03-01&fim=2026-04-30&paciente_id={paciente.id}",
        headers=auth,
    ).json()
    assert por_paciente["total_revenue"] == 350
    assert por_paciente["expenses"] == 0


def test_financeiro_restrito_ao_admin(client, auth_recepcao):
    assert client.get("/api/relatorios/financeiro", headers=auth_recepcao).status_code == 403


def test_extrato_e_a_receber(client, auth, paciente):
    _realizado(
        client, auth, paciente.id, "2026-03-10",
        [
            {"method": "Pix PJ", "value": 100},
            {"method": "Agendamento de Pagamento", "value": 400, "scheduled_date": "2026-04-01"},
        ],
    )
    linhas = client.get("/api/relatorios/extrato?inicio=2026-03-01&fim=2026-03-31", headers=auth).json()
    assert [(l["origem"], l["value"]) for l in linhas] == [("a_vista", 100)]
    assert linhas[0]["patient_name"] == "Ana Souza"

    pendentes = client.get("/api/relatorios/a-receber?fim=2026-04-30", headers=auth).json()
    assert [p["value"] for p in pendentes] == [400]


def test_relatorio_do_paciente(client, auth, paciente, material):
    toxina = [{"name": "Toxina 100U", "cost": 50, "quantity": 1}]
    _realizado(client, auth, paciente.id, "2026-01-10", [{"method": "Dinheiro", "value": 500}], materiais=toxina)
    _realizado(
        client, auth, paciente.id, "2026-01-30", [{"method": "Dinheiro", "value": 300}],
        procedimentos=[{"name": "Toxina", "value": 300}, {"name": "Limpeza", "value": 0}],
        materiais=toxina,
    )

    dados = client.get(f"/api/relatorios/paciente/{paciente.id}", headers=auth).json()
    assert dados["visitas"] == 2
    assert dados["total_investido"] == 800
    assert dados["custo_materiais"] == 100
    assert dados["lucro"] == 700
    assert dados["procedimento_favorito"] == "Toxina"
    assert dados["top_materiais"] == [{"name": "Toxina 100U", "quantidade": 2.0}]
    assert dados["intervalo_medio_dias"] == 20
    assert dados["ultima_visita"] == "2026-01-30"


def test_procedimentos_materiais_e_perfil(client, auth, session, paciente, material):
    outro = Paciente(full_name="Bruno Lima", gender="Masculino", origin="Google")
    session.add(outro)
    session.commit()

    toxina = [{"name": "Toxina 100U", "cost": 50, "quantity": 1}]
    _realizado(client, auth, paciente.id, "2026-02-10", [{"method": "Dinheiro", "value": 500}], materiais=toxina)
    _realizado(client, auth, outro.id, "2026-02-11", [{"method": "Dinheiro", "value": 500}], materiais=toxina)

    procs = client.get("/api/relatorios/procedimentos?inicio=2026-02-01&fim=2026-02-28", headers=auth).json()
    assert procs == [{"name": "Toxina", "quantidade": 2, "receita": 1000, "ticket_medio": 500}]

    mats = client.get("/api/relatorios/materiais?inicio=2026-02-01&fim=2026-02-28", headers=auth).json()
    assert mats == [{"name": "Toxina 100U", "quantidade": 2, "custo_total": 100}]

    perfil = client.get("/api/relatorios/perfil?inicio=2026-02-01&fim=2026-02-28", headers=auth).json()
    assert {g["grupo"] for g in perfil["por_genero"]} == {"Feminino", "Masculino"}
    assert {g["grupo"] for g in perfil["por_origem"]} == {"Instagram", "Google"}
    assert perfil["novos"] == 2


def test_painel(client, auth, session, paciente):
    hoje = date.today()
    paciente.birth_date = date(1990, hoje.month, hoje.day) if (hoje.month, hoje.day) != (2, 29) else date(1992, 2, 29)
    session.add(paciente)
    session.commit()

    _realizado(
        client, auth, paciente.id, hoje.isoformat(),
        [
            {"method": "Dinheiro", "value": 100},
            {"method": "Agendamento de Pagamento", "value": 250, "scheduled_date": (hoje + timedelta(days=5)).isoformat()},
        ],
    )
    client.post(
        "/api/atendimentos/",
        json={"patient_id": paciente.id, "date": (hoje + timedelta(days=3)).isoformat(), "time": "10:00", "status": "Confirmado"},
        headers=auth,
    )

    dados = client.get("/api/painel/", headers=auth).json()
    assert dados["atendimentos_realizados"] == 1
    assert dados["resumo_mes"]["cash_revenue"] == 100
    assert [a["value"] for a in dados["alertas_pagamento"]] == [250]
    assert dados["alertas_pagamento"][0]["dias"] == 5
    assert [p["full_name"] for p in dados["aniversariantes"]] == ["Ana Souza"]
    assert [p["status"] for p in dados["proximos"]] == ["Confirmado"]


def test_lista_de_recuperacao(client, auth, session, paciente):
    referencia = date(2026, 10, 19)
    _realizado(
        client, auth, paciente.id, "2026-05-10",
        [{"method": "Dinheiro", "value": 900}],
        procedimentos=[{"name": "Toxina botulínica", "value": 900}],
    )
    dados = client.get(f"/api/painel/?referencia={referencia.isoformat()}", headers=auth).json()
    assert [r["patient_name"] for r in dados["recuperacao"]] == ["Ana Souza"]

    client.post(
        "/api/atendimentos/",
        json={"patient_id": paciente.id, "date": "2026-11-05", "status": "Agendado"},
        headers=auth,
    )
    dados = client.get(f"/api/painel/?referencia={referencia.isoformat()}", headers=auth).json()
    assert dados["recuperacao"] == []
