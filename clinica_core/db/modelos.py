# clinica_core/db/modelos.py
from __future__ import annotations

from typing import List, Optional
import datetime as dt
from datetime import datetime, date, timezone
from enum import Enum

from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field


# =========================
# Enums base
# =========================

class Papel(str, Enum):
    """
    Papéis de usuário no sistema da clínica.
    """
    admin = "admin"
    recepcao = "recepcao"


class StatusAtendimento(str, Enum):
    agendado = "Agendado"
    confirmado = "Confirmado"
    realizado = "Realizado"
    realizado_pago = "Realizado Pago"
    realizado_a_pagar = "Realizado a Pagar"
    realizado_em_andamento = "Realizado (Em Andamento)"
    desmarcado = "Desmarcado"
    nao_compareceu = "Não Compareceu"


class TipoAtendimento(str, Enum):
    novo = "Novo"
    recorrente = "Recorrente"


class MetodoPagamento(str, Enum):
    """
    Formas de pagamento aceitas no atendimento.
    `outro` só aparece na baixa de um agendamento de pagamento.
    """
    dinheiro = "Dinheiro"
    pix_pf = "Pix PF"
    pix_pj = "Pix PJ"
    debito_pj = "Débito PJ"
    debito_pf = "Débito PF"
    credito_pj = "Cartão de Crédito PJ"
    credito_pf = "Cartão de Crédito PF"
    parceria = "Parceria"
    troca = "Troca em Procedimento"
    agendamento = "Agendamento de Pagamento"
    outro = "Outro"


class TipoMovimento(str, Enum):
    entrada = "entrada"
    saida = "saida"
    ajuste = "ajuste"


class TipoMeta(str, Enum):
    faturamento = "Faturamento"
    pacientes = "Pacientes"
    procedimentos = "Procedimentos"
    outro = "Outro"


def is_realizado(status) -> bool:
    """
    Qualquer variação de "Realizado" conta como atendimento feito.
    """
    valor = status.value if isinstance(status, Enum) else str(status or "")
    return "Realizado" in valor


# =========================
# Usuários
# =========================

class Usuario(SQLModel, table=True):
    """
    Usuário do sistema (login e permissões).
    """
    __tablename__ = "usuarios"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    nome: Optional[str] = Field(
        default=None,
        description="Nome visível do usuário"
    )
    password_hash: str = Field(description="Hash da senha")
    papel: Papel = Field(default=Papel.admin)
    ativo: bool = Field(default=True)


# =========================
# Pacientes e catálogo
# =========================

class Paciente(SQLModel, table=True):
    __tablename__ = "patients"

    id: Optional[int] = Field(default=None, primary_key=True)
    full_name: str = Field(index=True)
    phone: Optional[str] = None
    whatsapp: Optional[str] = None
    email: Optional[str] = None
    birth_date: Optional[date] = None
    gender: Optional[str] = Field(
        default=None,
        description="Feminino / Masculino / Outro"
    )
    cpf: Optional[str] = None
    address: Optional[str] = None
    origin: Optional[str] = Field(
        default=None,
        description="Canal de chegada: Instagram, Indicação, Google, ..."
    )
    protocol: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Procedimento(SQLModel, table=True):
    __tablename__ = "procedures"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    description: Optional[str] = None
    has_variable_price: bool = Field(default=False)
    default_price: float = Field(default=0, ge=0)
    duration_minutes: Optional[int] = None
    is_active: bool = Field(default=True)


class Material(SQLModel, table=True):
    """
    Insumo de estoque consumido nos atendimentos.
    """
    __tablename__ = "materials"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    description: Optional[str] = None
    unit: str = Field(default="un", description="ml / un / caixa / ...")
    cost_per_unit: float = Field(default=0, ge=0)
    stock_quantity: float = Field(default=0)
    minimum_stock: float = Field(default=0, ge=0)
    category: Optional[str] = None
    supplier: Optional[str] = None


# =========================
# Atendimentos e razão financeiro
# =========================

class Atendimento(SQLModel, table=True):
    """
    Uma visita clínica. Procedimentos, materiais e formas de pagamento
    ficam embutidos como JSON, como no banco original.
    """
    __tablename__ = "appointments"

    id: Optional[int] = Field(default=None, primary_key=True)
    patient_id: int = Field(foreign_key="patients.id", index=True)
    date: dt.date = Field(index=True)
    time: Optional[str] = Field(default=None, description="HH:MM")
    end_time: Optional[str] = Field(default=None, description="HH:MM")
    status: StatusAtendimento = Field(default=StatusAtendimento.agendado, index=True)
    type: TipoAtendimento = Field(default=TipoAtendimento.novo)
    service_type_custom: Optional[str] = None
    notes: Optional[str] = None

    procedures_json: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    materials_json: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    payment_methods_json: List[dict] = Field(default_factory=list, sa_column=Column(JSON))

    total_amount: float = Field(default=0, description="Soma dos procedimentos")
    cost_amount: float = Field(default=0, description="Soma de custo x quantidade dos materiais")
    profit_amount: float = Field(default=0, description="À vista líquido - custo de materiais")
    consultation_value: float = Field(default=0, ge=0)


class Parcela(SQLModel, table=True):
    """
    Entrada de caixa prevista ou realizada ligada a um atendimento.
    """
    __tablename__ = "installments"

    id: Optional[int] = Field(default=None, primary_key=True)
    appointment_id: int = Field(foreign_key="appointments.id", index=True)
    patient_name: str = Field(default="Paciente")
    installment_number: int = Field(default=1, ge=1)
    total_installments: int = Field(default=1, ge=1)
    value: float
    due_date: date = Field(index=True)
    is_received: bool = Field(default=False)
    received_date: Optional[date] = Field(default=None, index=True)
    method: Optional[str] = None
    payment_entry_index: Optional[int] = Field(
        default=None,
        description="Posição da forma de pagamento de origem em payment_methods_json"
    )


class MovimentoEstoque(SQLModel, table=True):
    __tablename__ = "stock_movements"

    id: Optional[int] = Field(default=None, primary_key=True)
    material_id: int = Field(foreign_key="materials.id", index=True)
    appointment_id: Optional[int] = Field(
        default=None,
        foreign_key="appointments.id",
        index=True,
    )
    type: TipoMovimento
    quantity: float
    previous_stock: float = 0
    new_stock: float = 0
    cost_per_unit: float = 0
    total_cost: float = 0
    reason: Optional[str] = None
    date: dt.date = Field(index=True)
    material_name: Optional[str] = None
    patient_name: Optional[str] = None


# =========================
# Financeiro e metas
# =========================

class Despesa(SQLModel, table=True):
    __tablename__ = "expenses"

    id: Optional[int] = Field(default=None, primary_key=True)
    description: str
    category: str = Field(default="Outros")
    amount: float = Field(ge=0)
    due_date: date = Field(index=True)
    is_paid: bool = Field(default=False)
    paid_date: Optional[date] = None


class Meta(SQLModel, table=True):
    __tablename__ = "goals"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: Optional[str] = None
    type: TipoMeta = Field(default=TipoMeta.faturamento)
    target_value: float = Field(gt=0)
    current_value: float = Field(
        default=0,
        description="Valor manual, usado só para metas do tipo Outro"
    )
    month: int = Field(ge=1, le=12)
    year: int


# =========================
# Agenda
# =========================

class ModeloAgenda(SQLModel, table=True):
    """
    Expediente padrão de um dia da semana (0=segunda ... 6=domingo).
    """
    __tablename__ = "agenda_templates"

    id: Optional[int] = Field(default=None, primary_key=True)
    weekday: int = Field(ge=0, le=6, index=True)
    start_time: str = Field(default="09:00")
    end_time: str = Field(default="18:00")
    slot_minutes: int = Field(default=30, gt=0)
    is_active: bool = Field(default=True)


class ConfiguracaoDia(SQLModel, table=True):
    """
    Ajuste manual de um dia específico; tem prioridade sobre o modelo.
    """
    __tablename__ = "day_configurations"

    id: Optional[int] = Field(default=None, primary_key=True)
    date: dt.date = Field(index=True, unique=True)
    start_time: str = Field(default="09:00")
    end_time: str = Field(default="18:00")
    slot_minutes: int = Field(default=30, gt=0)
    is_closed: bool = Field(default=False)


class DiaBloqueado(SQLModel, table=True):
    __tablename__ = "blocked_days"

    id: Optional[int] = Field(default=None, primary_key=True)
    date: dt.date = Field(index=True, unique=True)
    reason: Optional[str] = None
