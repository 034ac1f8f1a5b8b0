from datetime import date

from sqlmodel import select

from clinica_core.db.modelos import Atendimento, Parcela
from clinica_core.regras.pagamentos import somar_meses

AGENDAMENTO = "Agendamento de Pagamento"


def _criar_com_agendamento(client, auth, paciente_id, valor=300):
    body = {
        "patient_id": paciente_id,
        "date": "2026-03-10",
        "status": "Realizado",
        "procedures": [{"name": "Preenchimento labial", "value": valor}],
        "payment_methods": [
            {"method": "Dinheiro", "value": 100},
            {"method": AGENDAMENTO, "value": valor, "scheduled_date": "2026-04-10"},
        ],
    }
    resp = client.post("/api/atendimentos/", json=body, headers=auth)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_receber_no_credito_em_tres_vezes(client, auth, session, paciente):
    criado = _criar_com_agendamento(client, auth, paciente.id)
    pendente = criado["installments"][0]
    assert pendente["is_received"] is False
    assert pendente["payment_entry_index"] == 1

    resp = client.post(
        f"/api/parcelas/{pendente['id']}/receber",
        json={"method": "Cartão de Crédito PJ", "installments": 3},
        headers=auth,
    )
    assert resp.status_code == 200, resp.text

    hoje = date.today()
    parcelas = session.exec(
        select(Parcela)
        .where(Parcela.appointment_id == criado["id"])
        .order_by(Parcela.installment_number)
    ).all()
    assert [p.installment_number for p in parcelas] == [1, 2, 3]
    assert all(p.value == 100 for p in parcelas)
    assert all(p.is_received for p in parcelas)
    assert [p.due_date for p in parcelas] == [somar_meses(hoje, i) for i in (1, 2, 3)]
    assert all(p.received_date == p.due_date for p in parcelas)

    atendimento = session.get(Atendimento, criado["id"])
    entrada = atendimento.payment_methods_json[1]
    assert entrada["method"] == "Cartão de Crédito PJ"
    assert entrada["value"] == 300
    assert entrada["installments"] == 3
    assert entrada["reconciled_at"]
    assert atendimento.payment_methods_json[0]["method"] == "Dinheiro"


def test_receber_pix_com_desconto(client, auth, session, paciente):
    criado = _criar_com_agendamento(client, auth, paciente.id)
    pendente_id = criado["installments"][0]["id"]

    resp = client.post(
        f"/api/parcelas/{pendente_id}/receber",
        json={"method": "Pix PF", "discount_percent": 10},
        headers=auth,
    )
    assert resp.status_code == 200
    parcela = resp.json()["parcela"]
    assert parcela["value"] == 270
    assert parcela["due_date"] == date.today().isoformat()
    assert parcela["received_date"] == date.today().isoformat()
    assert resp.json()["novas"] == []


def test_receber_duas_vezes_da_conflito(client, auth, paciente):
    criado = _criar_com_agendamento(client, auth, paciente.id)
    pendente_id = criado["installments"][0]["id"]
    body = {"method": "Dinheiro"}

    assert client.post(f"/api/parcelas/{pendente_id}/receber", json=body, headers=auth).status_code == 200
    resp = client.post(f"/api/parcelas/{pendente_id}/receber", json=body, headers=auth)
    assert resp.status_code == 409


def test_receber_parcela_inexistente(client, auth):
    resp = client.post("/api/parcelas/999/receber", json={"method": "Dinheiro"}, headers=auth)
    assert resp.status_code == 404


def test_regravar_apos_baixa_preserva_parcelas_da_baixa(client, auth, session, paciente):
    criado = _criar_com_agendamento(client, auth, paciente.id)
    pendente_id = criado["installments"][0]["id"]
    client.post(
        f"/api/parcelas/{pendente_id}/receber",
        json={"method": "Cartão de Crédito PF", "installments": 2},
        headers=auth,
    )

    atual = client.get(f"/api/atendimentos/{criado['id']}", headers=auth).json()
    body = {
        "patient_id": atual["patient_id"],
        "date": atual["date"],
        "status": atual["status"],
        "notes": "observação nova",
        "procedures": atual["procedures_json"],
        "payment_methods": atual["payment_methods_json"],
    }
    resp = client.put(f"/api/atendimentos/{criado['id']}", json=body, headers=auth)
    assert resp.status_code == 200, resp.text

    parcelas = resp.json()["installments"]
    assert len(parcelas) == 2
    assert {p["method"] for p in parcelas} == {"Cartão de Crédito PF"}
    # a forma baixada não volta a contar como à vista
    assert resp.json()["profit_amount"] == 100


def test_alternar_recebida(client, auth, paciente):
    criado = _criar_com_agendamento(client, auth, paciente.id)
    pendente_id = criado["installments"][0]["id"]

    resp = client.patch(f"/api/parcelas/{pendente_id}/recebida", headers=auth)
    assert resp.json()["is_received"] is True
    assert resp.json()["received_date"] == date.today().isoformat()

    resp = client.patch(f"/api/parcelas/{pendente_id}/recebida", headers=auth)
    assert resp.json()["is_received"] is False
    assert resp.json()["received_date"] is None


def test_listar_pendentes(client, auth, paciente):
    _criar_com_agendamento(client, auth, paciente.id)
    pendentes = client.get("/api/parcelas/?pendentes=true", headers=auth).json()
    assert len(pendentes) == 1
    assert pendentes[0]["method"] == AGENDAMENTO


def test_baixa_sobrevive_a_troca_de_status(client, auth, session, paciente):
    criado = _criar_com_agendamento(client, auth, paciente.id)
    pendente_id = criado["installments"][0]["id"]
    client.post(f"/api/parcelas/{pendente_id}/receber", json={"method": "Pix PF"}, headers=auth)

    hoje = date.today().isoformat()
    periodo = f"/api/relatorios/financeiro?inicio={hoje}&fim={hoje}"
    assert client.get(periodo, headers=auth).json()["total_revenue"] == 300

    for status in ("Agendado", "Realizado"):
        resp = client.patch(f"/api/atendimentos/{criado['id']}/status", json={"status": status}, headers=auth)
        assert resp.status_code == 200, resp.text
        assert client.get(periodo, headers=auth).json()["total_revenue"] == 300

    parcelas = session.exec(select(Parcela).where(Parcela.appointment_id == criado["id"])).all()
    assert len(parcelas) == 1
    assert parcelas[0].method == "Pix PF"
    assert parcelas[0].is_received is True
    # só o dinheiro conta como à vista; o Pix vem da parcela
    assert resp.json()["profit_amount"] == 100


def test_receber_parcela_de_parcelamento_ja_baixado(client, auth, session, paciente):
    body = {
        "patient_id": paciente.id,
        "date": "2026-03-10",
        "status": "Realizado",
        "procedures": [{"name": "Bioestimulador", "value": 300}],
        "payment_methods": [
            {"method": AGENDAMENTO, "value": 200, "scheduled_date": "2026-04-10"},
            {"method": AGENDAMENTO, "value": 100, "scheduled_date": "2026-05-10"},
        ],
    }
    criado = client.post("/api/atendimentos/", json=body, headers=auth).json()
    de_200, de_100 = criado["installments"]

    resp = client.post(
        f"/api/parcelas/{de_200['id']}/receber",
        json={"method": AGENDAMENTO, "installments": 2},
        headers=auth,
    )
    assert resp.status_code == 200, resp.text
    segunda = resp.json()["novas"][0]
    assert (segunda["installment_number"], segunda["total_installments"]) == (2, 2)
    assert segunda["value"] == 100
    assert segunda["is_received"] is False

    resp = client.post(f"/api/parcelas/{segunda['id']}/receber", json={"method": "Dinheiro"}, headers=auth)
    assert resp.status_code == 200, resp.text
    recebida = resp.json()["parcela"]
    assert (recebida["installment_number"], recebida["total_installments"]) == (2, 2)
    assert recebida["is_received"] is True
    assert recebida["received_date"] == date.today().isoformat()
    assert recebida["method"] == "Dinheiro"
    assert recebida["due_date"] == segunda["due_date"]
    assert resp.json()["novas"] == []

    # o outro agendamento de mesmo valor continua em aberto
    pagamentos = session.get(Atendimento, criado["id"]).payment_methods_json
    assert pagamentos[1]["method"] == AGENDAMENTO
    assert not pagamentos[1].get("reconciled_at")
    aberta = session.get(Parcela, de_100["id"])
    assert aberta.is_received is False
    assert aberta.method == AGENDAMENTO
