# clinica_core/servicos/agenda.py
from __future__ import annotations

from typing import List, Optional
import datetime as dt
from datetime import date, timedelta

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, model_validator
from sqlmodel import Session, select

from clinica_core.db.conexion import get_session, obter, transacao
from clinica_core.db.modelos import (
    Atendimento,
    ConfiguracaoDia,
    DiaBloqueado,
    ModeloAgenda,
    Paciente,
)
from clinica_core.regras.agenda import (
    STATUS_LIVRES,
    expediente_do_dia,
    gerar_slots,
    hora_valida,
)
from clinica_core.regras.apuracao import limites_do_mes
from clinica_core.security import EQUIPE, SO_ADMIN, require_role

router = APIRouter()


# --------- Esquemas de entrada ---------

class _Janela(BaseModel):
    start_time: str = "09:00"
    end_time: str = "18:00"
    slot_minutes: int = Field(default=30, gt=0, le=240)

    @model_validator(mode="after")
    def _checar_horarios(self):
        if not hora_valida(self.start_time) or not hora_valida(self.end_time):
            raise ValueError("horário inválido (use HH:MM)")
        # "HH:MM" com zero à esquerda compara certo como texto
        self.start_time = "%02d:%02d" % tuple(map(int, self.start_time.split(":")[:2]))
        self.end_time = "%02d:%02d" % tuple(map(int, self.end_time.split(":")[:2]))
        if self.end_time <= self.start_time:
            raise ValueError("o fim do expediente deve ser depois do início")
        return self


class ModeloIn(_Janela):
    weekday: int = Field(ge=0, le=6)
    is_active: bool = True


class ConfiguracaoIn(_Janela):
    date: dt.date
    is_closed: bool = False


# --------- Helpers ---------

def _carregar_regras(session: Session, inicio: date, fim: date):
    modelos = session.exec(select(ModeloAgenda)).all()
    configuracoes = session.exec(
        select(ConfiguracaoDia)
        .where(ConfiguracaoDia.date >= inicio)
        .where(ConfiguracaoDia.date <= fim)
    ).all()
    bloqueios = session.exec(
        select(DiaBloqueado)
        .where(DiaBloqueado.date >= inicio)
        .where(DiaBloqueado.date <= fim)
    ).all()
    return modelos, configuracoes, bloqueios


# --------- Modelos semanais ---------

@router.get("/modelos", response_model=List[ModeloAgenda])
def listar_modelos(
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    return session.exec(select(ModeloAgenda).order_by(ModeloAgenda.weekday.asc())).all()


@router.post("/modelos", response_model=ModeloAgenda, status_code=status.HTTP_201_CREATED)
def criar_modelo(
    payload: ModeloIn,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*SO_ADMIN)),
):
    novo = ModeloAgenda(**payload.model_dump())
    with transacao(session, "criar_modelo_agenda"):
        session.add(novo)
    session.refresh(novo)
    return novo


@router.put("/modelos/{modelo_id}", response_model=ModeloAgenda)
def atualizar_modelo(
    modelo_id: int,
    payload: ModeloIn,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*SO_ADMIN)),
):
    modelo = obter(session, ModeloAgenda, modelo_id, "Modelo de agenda não encontrado.")
    for campo, valor in payload.model_dump().items():
        setattr(modelo, campo, valor)
    with transacao(session, "atualizar_modelo_agenda"):
        session.add(modelo)
    session.refresh(modelo)
    return modelo


@router.delete("/modelos/{modelo_id}", status_code=status.HTTP_204_NO_CONTENT)
def excluir_modelo(
    modelo_id: int,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*SO_ADMIN)),
):
    modelo = obter(session, ModeloAgenda, modelo_id, "Modelo de agenda não encontrado.")
    with transacao(session, "excluir_modelo_agenda"):
        session.delete(modelo)
    return


# --------- Configuração por dia ---------

@router.get("/configuracoes", response_model=List[ConfiguracaoDia])
def listar_configuracoes(
    inicio: Optional[date] = None,
    fim: Optional[date] = None,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    q = select(ConfiguracaoDia)
    if inicio:
        q = q.where(ConfiguracaoDia.date >= inicio)
    if fim:
        q = q.where(ConfiguracaoDia.date <= fim)
    return session.exec(q.order_by(ConfiguracaoDia.date.asc())).all()


@router.post("/configuracoes", response_model=ConfiguracaoDia)
def salvar_configuracao(
    payload: ConfiguracaoIn,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*SO_ADMIN)),
):
    """
    Uma configuração por data: se já existe, é sobrescrita.
    """
    config = session.exec(
        select(ConfiguracaoDia).where(ConfiguracaoDia.date == payload.date)
    ).first()
    if config is None:
        config = ConfiguracaoDia(date=payload.date)
    for campo, valor in payload.model_dump().items():
        setattr(config, campo, valor)
    with transacao(session, "salvar_configuracao_dia"):
        session.add(config)
    session.refresh(config)
    return config


@router.delete("/configuracoes/{config_id}", status_code=status.HTTP_204_NO_CONTENT)
def excluir_configuracao(
    config_id: int,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*SO_ADMIN)),
):
    config = obter(session, ConfiguracaoDia, config_id, "Configuração não encontrada.")
    with transacao(session, "excluir_configuracao_dia"):
        session.delete(config)
    return


# --------- Bloqueios ---------

@router.get("/bloqueios", response_model=List[DiaBloqueado])
def listar_bloqueios(
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    return session.exec(select(DiaBloqueado).order_by(DiaBloqueado.date.asc())).all()


@router.post("/bloqueios/{data}")
def alternar_bloqueio(
    data: date,
    motivo: Optional[str] = None,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*SO_ADMIN)),
):
    """
    Bloqueia o dia ou, se já estava bloqueado, libera.
    """
    bloqueio = session.exec(select(DiaBloqueado).where(DiaBloqueado.date == data)).first()
    with transacao(session, "alternar_bloqueio"):
        if bloqueio:
            session.delete(bloqueio)
        else:
            session.add(DiaBloqueado(date=data, reason=motivo))
    return {"date": data.isoformat(), "bloqueado": bloqueio is None}


# --------- Visões ---------

@router.get("/dia/{data}")
def grade_do_dia(
    data: date,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    modelos, configuracoes, bloqueios = _carregar_regras(session, data, data)
    expediente = expediente_do_dia(data, modelos, configuracoes, bloqueios)

    linhas = session.exec(
        select(Atendimento, Paciente)
        .where(Atendimento.patient_id == Paciente.id)
        .where(Atendimento.date == data)
        .order_by(Atendimento.time.asc())
    ).all()
    atendimentos = [a for a, _ in linhas]

    return {
        "date": data.isoformat(),
        "bloqueado": any(b.date == data for b in bloqueios),
        "expediente": expediente,
        "slots": gerar_slots(data, expediente, atendimentos),
        "atendimentos": [
            {
                "id": a.id,
                "time": a.time,
                "end_time": a.end_time,
                "status": a.status,
                "patient_id": a.patient_id,
                "patient_name": p.full_name,
                "service_type_custom": a.service_type_custom,
            }
            for a, p in linhas
        ],
    }


@router.get("/mes")
def visao_do_mes(
    ano: int = Query(ge=2000, le=2100),
    mes: int = Query(ge=1, le=12),
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    """
    Um resumo por dia do mês: aberto ou não, atendimentos e slots livres.
    """
    inicio, fim = limites_do_mes(ano, mes)
    modelos, configuracoes, bloqueios = _carregar_regras(session, inicio, fim)
    atendimentos = session.exec(
        select(Atendimento)
        .where(Atendimento.date >= inicio)
        .where(Atendimento.date <= fim)
    ).all()

    dias = []
    d = inicio
    while d <= fim:
        do_dia = [a for a in atendimentos if a.date == d]
        expediente = expediente_do_dia(d, modelos, configuracoes, bloqueios)
        slots = gerar_slots(d, expediente, do_dia)
        dias.append(
            {
                "date": d.isoformat(),
                "aberto": expediente is not None,
                "bloqueado": any(b.date == d for b in bloqueios),
                "atendimentos": len([a for a in do_dia if a.status not in STATUS_LIVRES]),
                "slots_livres": len([s for s in slots if s.livre]),
            }
        )
        d += timedelta(days=1)

    return {"ano": ano, "mes": mes, "dias": dias}
