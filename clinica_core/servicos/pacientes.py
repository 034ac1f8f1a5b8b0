# clinica_core/servicos/pacientes.py
from typing import List, Optional
from datetime import date

import structlog
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from clinica_core.db.conexion import get_session, obter, transacao
from clinica_core.db.modelos import Atendimento, Paciente
from clinica_core.security import EQUIPE, SO_ADMIN, require_role
from clinica_core.servicos.atendimentos import excluir_atendimento

router = APIRouter()
logger = structlog.get_logger(__name__)


class PacienteIn(BaseModel):
    full_name: str = Field(min_length=1)
    phone: Optional[str] = None
    whatsapp: Optional[str] = None
    email: Optional[str] = None
    birth_date: Optional[date] = None
    gender: Optional[str] = None
    cpf: Optional[str] = None
    address: Optional[str] = None
    origin: Optional[str] = None
    protocol: Optional[str] = None
    notes: Optional[str] = None


@router.get("/", response_model=List[Paciente])
def listar_pacientes(
    busca: Optional[str] = None,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    q = select(Paciente)
    if busca:
        q = q.where(Paciente.full_name.contains(busca))
    return session.exec(q.order_by(Paciente.full_name.asc())).all()


@router.get("/{paciente_id}", response_model=Paciente)
def obter_paciente(
    paciente_id: int,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    return obter(session, Paciente, paciente_id, "Paciente não encontrado.")


@router.post("/", response_model=Paciente, status_code=status.HTTP_201_CREATED)
def criar_paciente(
    payload: PacienteIn,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    novo = Paciente(**payload.model_dump())
    with transacao(session, "criar_paciente"):
        session.add(novo)
    session.refresh(novo)
    return novo


@router.put("/{paciente_id}", response_model=Paciente)
def atualizar_paciente(
    paciente_id: int,
    payload: PacienteIn,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    paciente = obter(session, Paciente, paciente_id, "Paciente não encontrado.")
    for campo, valor in payload.model_dump(exclude_unset=True).items():
        setattr(paciente, campo, valor)
    with transacao(session, "atualizar_paciente"):
        session.add(paciente)
    session.refresh(paciente)
    return paciente


@router.delete("/{paciente_id}", status_code=status.HTTP_204_NO_CONTENT)
def excluir_paciente(
    paciente_id: int,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*SO_ADMIN)),
):
    """
    Apaga o paciente com todos os atendimentos e o razão de cada um.
    """
    paciente = obter(session, Paciente, paciente_id, "Paciente não encontrado.")
    atendimentos = session.exec(
        select(Atendimento).where(Atendimento.patient_id == paciente.id)
    ).all()
    with transacao(session, "excluir_paciente"):
        for a in atendimentos:
            excluir_atendimento(session, a)
        session.flush()
        session.delete(paciente)
    logger.info("paciente_excluido", paciente_id=paciente_id, atendimentos=len(atendimentos))
    return
