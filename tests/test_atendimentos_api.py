from sqlmodel import select

from clinica_core.db.modelos import Atendimento, Material, MovimentoEstoque, Parcela

DATA = "2026-03-10"


def corpo(paciente_id, **kw):
    dados = {
        "patient_id": paciente_id,
        "date": DATA,
        "time": "14:00",
        "end_time": "15:00",
        "status": "Realizado",
        "procedures": [{"name": "Toxina", "value": 1200}],
        "materials": [{"name": "Toxina 100U", "cost": 50, "quantity": 2}],
        "payment_methods": [
            {"method": "Dinheiro", "value": 200},
            {"method": "Cartão de Crédito PJ", "value": 1000, "installments": 2},
        ],
    }
    dados.update(kw)
    return dados


def _parcelas(session, atendimento_id):
    return session.exec(
        select(Parcela)
        .where(Parcela.appointment_id == atendimento_id)
        .order_by(Parcela.installment_number)
    ).all()


def _movimentos(session, atendimento_id):
    return session.exec(
        select(MovimentoEstoque).where(MovimentoEstoque.appointment_id == atendimento_id)
    ).all()


def test_salvar_realizado_gera_parcelas_e_baixa_estoque(client, auth, session, paciente, material):
    resp = client.post("/api/atendimentos/", json=corpo(paciente.id), headers=auth)
    assert resp.status_code == 201, resp.text
    dados = resp.json()

    assert dados["total_amount"] == 1200
    assert dados["cost_amount"] == 100
    assert dados["profit_amount"] == 100
    assert dados["patient_name"] == "Ana Souza"
    assert [p["due_date"] for p in dados["installments"]] == ["2026-04-10", "2026-05-10"]
    assert all(p["is_received"] for p in dados["installments"])

    assert session.get(Material, material.id).stock_quantity == 8
    movs = _movimentos(session, dados["id"])
    assert len(movs) == 1
    assert movs[0].quantity == 2
    assert movs[0].total_cost == 100
    assert movs[0].patient_name == "Ana Souza"


def test_regravar_substitui_o_razao(client, auth, session, paciente, material):
    criado = client.post("/api/atendimentos/", json=corpo(paciente.id), headers=auth).json()

    novo = corpo(
        paciente.id,
        materials=[{"name": "Toxina 100U", "cost": 50, "quantity": 1}],
        payment_methods=[{"method": "Cartão de Crédito PF", "value": 900, "installments": 3}],
    )
    resp = client.put(f"/api/atendimentos/{criado['id']}", json=novo, headers=auth)
    assert resp.status_code == 200, resp.text

    parcelas = _parcelas(session, criado["id"])
    assert [p.installment_number for p in parcelas] == [1, 2, 3]
    assert all(p.value == 300 for p in parcelas)
    assert session.get(Material, material.id).stock_quantity == 9
    assert len(_movimentos(session, criado["id"])) == 1


def test_sair_de_realizado_desfaz_o_razao(client, auth, session, paciente, material):
    criado = client.post("/api/atendimentos/", json=corpo(paciente.id), headers=auth).json()

    resp = client.patch(
        f"/api/atendimentos/{criado['id']}/status",
        json={"status": "Desmarcado"},
        headers=auth,
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["installments"] == []
    assert _movimentos(session, criado["id"]) == []
    assert session.get(Material, material.id).stock_quantity == 10

    resp = client.patch(
        f"/api/atendimentos/{criado['id']}/status",
        json={"status": "Realizado Pago"},
        headers=auth,
    )
    assert len(resp.json()["installments"]) == 2
    assert session.get(Material, material.id).stock_quantity == 8


def test_agendado_nao_gera_razao(client, auth, session, paciente, material):
    resp = client.post("/api/atendimentos/", json=corpo(paciente.id, status="Agendado"), headers=auth)
    assert resp.status_code == 201
    assert resp.json()["installments"] == []
    assert session.get(Material, material.id).stock_quantity == 10


def test_agendamento_sem_data_nao_grava_nada(client, auth, session, paciente, material):
    body = corpo(
        paciente.id,
        payment_methods=[{"method": "Agendamento de Pagamento", "value": 150, "scheduled_date": ""}],
    )
    resp = client.post("/api/atendimentos/", json=body, headers=auth)

    assert resp.status_code == 422
    assert "R$ 150,00" in resp.json()["detail"]
    assert session.exec(select(Atendimento)).all() == []
    assert session.exec(select(Parcela)).all() == []
    assert session.get(Material, material.id).stock_quantity == 10


def test_material_desconhecido_e_paciente_inexistente(client, auth, paciente, material):
    body = corpo(paciente.id, materials=[{"name": "Fio PDO", "cost": 10}])
    resp = client.post("/api/atendimentos/", json=body, headers=auth)
    assert resp.status_code == 422
    assert "Fio PDO" in resp.json()["detail"]

    resp = client.post("/api/atendimentos/", json=corpo(9999), headers=auth)
    assert resp.status_code == 404


def test_horario_invalido(client, auth, paciente):
    resp = client.post("/api/atendimentos/", json=corpo(paciente.id, time="25:00"), headers=auth)
    assert resp.status_code == 422


def test_excluir_remove_parcelas_e_movimentos(client, auth, session, paciente, material):
    criado = client.post("/api/atendimentos/", json=corpo(paciente.id), headers=auth).json()

    resp = client.delete(f"/api/atendimentos/{criado['id']}", headers=auth)
    assert resp.status_code == 204

    assert session.get(Atendimento, criado["id"]) is None
    assert _parcelas(session, criado["id"]) == []
    assert _movimentos(session, criado["id"]) == []
    assert session.get(Material, material.id).stock_quantity == 10

    assert client.get(f"/api/atendimentos/{criado['id']}", headers=auth).status_code == 404


def test_retornos_sao_agendados(client, auth, session, paciente, material):
    body = corpo(
        paciente.id,
        service_type_custom="Toxina",
        retornos=[{"date": "2026-03-25"}, {"date": "2026-09-10", "time": "10:00", "notes": "Reaplicação"}],
    )
    resp = client.post("/api/atendimentos/", json=body, headers=auth)
    assert resp.status_code == 201

    retornos = session.exec(
        select(Atendimento).where(Atendimento.id != resp.json()["id"]).order_by(Atendimento.date)
    ).all()
    assert len(retornos) == 2
    assert retornos[0].status.value == "Agendado"
    assert retornos[0].type.value == "Recorrente"
    assert retornos[0].time == "14:00"
    assert retornos[0].end_time == "14:30"
    assert retornos[0].notes == "Retorno Automático: Toxina"
    assert retornos[1].time == "10:00"
    assert retornos[1].notes == "Retorno Automático: Reaplicação"


def test_listar_com_busca(client, auth, paciente, material):
    client.post("/api/atendimentos/", json=corpo(paciente.id), headers=auth)

    assert len(client.get("/api/atendimentos/?busca=Ana", headers=auth).json()) == 1
    assert client.get("/api/atendimentos/?busca=Carla", headers=auth).json() == []
    assert len(client.get(f"/api/atendimentos/?data={DATA}&status=Realizado", headers=auth).json()) == 1


def test_excluir_paciente_leva_os_atendimentos(client, auth, session, paciente, material):
    criado = client.post("/api/atendimentos/", json=corpo(paciente.id), headers=auth).json()

    assert client.delete(f"/api/pacientes/{paciente.id}", headers=auth).status_code == 204
    assert session.get(Atendimento, criado["id"]) is None
    assert session.exec(select(Parcela)).all() == []


def test_sem_token(client):
    assert client.get("/api/atendimentos/").status_code == 401
