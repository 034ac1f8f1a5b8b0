# clinica_core/servicos/estoque.py
from __future__ import annotations

from typing import Dict, List, Optional
import datetime as dt
from datetime import date

import structlog
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from clinica_core.db.conexion import get_session, obter, transacao
from clinica_core.db.modelos import Material, MovimentoEstoque, TipoMovimento
from clinica_core.erros import ErroConflito, ErroValidacao
from clinica_core.security import EQUIPE, SO_ADMIN, require_role

router = APIRouter()
logger = structlog.get_logger(__name__)


# --------- Esquemas de entrada ---------

class MaterialIn(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    unit: str = "un"
    cost_per_unit: float = Field(default=0, ge=0)
    stock_quantity: float = 0
    minimum_stock: float = Field(default=0, ge=0)
    category: Optional[str] = None
    supplier: Optional[str] = None


class MovimentoIn(BaseModel):
    material_id: int
    type: TipoMovimento
    quantity: float = Field(ge=0)
    reason: Optional[str] = None
    date: Optional[dt.date] = None


# --------- Helpers ---------

def aplicar_movimento(
    session: Session,
    material: Material,
    tipo: TipoMovimento,
    quantidade: float,
    data: Optional[date] = None,
    motivo: Optional[str] = None,
    atendimento_id: Optional[int] = None,
    paciente: Optional[str] = None,
    custo_unitario: Optional[float] = None,
) -> MovimentoEstoque:
    """
    Mexe no saldo do material e registra o movimento (sem commit).

    entrada soma, saida subtrai, ajuste define o saldo. Saldo negativo é
    permitido (o material foi usado mesmo sem estar lançado), mas fica no log.
    """
    anterior = float(material.stock_quantity or 0)
    quantidade = float(quantidade or 0)

    if tipo == TipoMovimento.entrada:
        novo = anterior + quantidade
        movimentada = quantidade
    elif tipo == TipoMovimento.saida:
        novo = anterior - quantidade
        movimentada = quantidade
    else:
        novo = quantidade
        movimentada = abs(novo - anterior)

    if novo < 0:
        logger.warning("estoque_negativo", material_id=material.id, saldo=novo)

    custo = float(material.cost_per_unit or 0) if custo_unitario is None else float(custo_unitario)
    material.stock_quantity = novo
    session.add(material)

    mov = MovimentoEstoque(
        material_id=material.id,
        appointment_id=atendimento_id,
        type=tipo,
        quantity=quantidade,
        previous_stock=anterior,
        new_stock=novo,
        cost_per_unit=custo,
        total_cost=round(custo * movimentada, 2),
        reason=motivo,
        date=data or date.today(),
        material_name=material.name,
        patient_name=paciente,
    )
    session.add(mov)
    return mov


def materiais_por_nome(session: Session, nomes: List[str]) -> Dict[str, Material]:
    if not nomes:
        return {}
    encontrados = session.exec(select(Material).where(Material.name.in_(nomes))).all()
    return {m.name: m for m in encontrados}


# --------- Materiais ---------

@router.get("/materiais", response_model=List[Material])
def listar_materiais(
    busca: Optional[str] = None,
    categoria: Optional[str] = None,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    q = select(Material)
    if busca:
        q = q.where(Material.name.contains(busca))
    if categoria:
        q = q.where(Material.category == categoria)
    return session.exec(q.order_by(Material.name.asc())).all()


@router.get("/materiais/{material_id}", response_model=Material)
def obter_material(
    material_id: int,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    return obter(session, Material, material_id, "Material não encontrado.")


@router.post("/materiais", response_model=Material, status_code=status.HTTP_201_CREATED)
def criar_material(
    payload: MaterialIn,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*SO_ADMIN)),
):
    novo = Material(**payload.model_dump())
    with transacao(session, "criar_material"):
        session.add(novo)
    session.refresh(novo)
    return novo


@router.put("/materiais/{material_id}", response_model=Material)
def atualizar_material(
    material_id: int,
    payload: MaterialIn,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*SO_ADMIN)),
):
    material = obter(session, Material, material_id, "Material não encontrado.")
    # o saldo só muda por movimento, para não perder o histórico
    for campo, valor in payload.model_dump(exclude={"stock_quantity"}).items():
        setattr(material, campo, valor)
    with transacao(session, "atualizar_material"):
        session.add(material)
    session.refresh(material)
    return material


@router.delete("/materiais/{material_id}", status_code=status.HTTP_204_NO_CONTENT)
def excluir_material(
    material_id: int,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*SO_ADMIN)),
):
    material = obter(session, Material, material_id, "Material não encontrado.")
    tem_movimento = session.exec(
        select(MovimentoEstoque.id).where(MovimentoEstoque.material_id == material.id)
    ).first()
    if tem_movimento:
        raise ErroConflito("Material com movimentações registradas não pode ser excluído.")
    with transacao(session, "excluir_material"):
        session.delete(material)
    return


@router.get("/baixo-estoque", response_model=List[Material])
def baixo_estoque(
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    q = select(Material).where(Material.stock_quantity <= Material.minimum_stock)
    return session.exec(q.order_by(Material.name.asc())).all()


# --------- Movimentos ---------

@router.get("/movimentos", response_model=List[MovimentoEstoque])
def listar_movimentos(
    material_id: Optional[int] = None,
    atendimento_id: Optional[int] = None,
    inicio: Optional[date] = None,
    fim: Optional[date] = None,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    q = select(MovimentoEstoque)
    if material_id:
        q = q.where(MovimentoEstoque.material_id == material_id)
    if atendimento_id:
        q = q.where(MovimentoEstoque.appointment_id == atendimento_id)
    if inicio:
        q = q.where(MovimentoEstoque.date >= inicio)
    if fim:
        q = q.where(MovimentoEstoque.date <= fim)
    q = q.order_by(MovimentoEstoque.date.desc(), MovimentoEstoque.id.desc())
    return session.exec(q).all()


@router.post("/movimentos", response_model=MovimentoEstoque, status_code=status.HTTP_201_CREATED)
def registrar_movimento(
    payload: MovimentoIn,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    material = obter(session, Material, payload.material_id, "Material não encontrado.")
    if payload.type != TipoMovimento.ajuste and payload.quantity <= 0:
        raise ErroValidacao("Quantidade deve ser maior que zero.")

    with transacao(session, "registrar_movimento"):
        mov = aplicar_movimento(
            session,
            material,
            payload.type,
            payload.quantity,
            data=payload.date,
            motivo=payload.reason,
        )
    session.refresh(mov)
    logger.info(
        "movimento_registrado",
        material_id=material.id,
        tipo=payload.type.value,
        saldo=material.stock_quantity,
    )
    return mov


# --------- Fornecedores ---------

@router.get("/fornecedores")
def resumo_fornecedores(
    session: Session = Depends(get_session),
    _user=Depends(require_role(*EQUIPE)),
):
    """
    Valor em estoque por fornecedor (saldo x custo unitário).
    """
    materiais = session.exec(select(Material)).all()
    por_fornecedor: Dict[str, Dict[str, float]] = {}
    for m in materiais:
        nome = m.supplier or "Sem fornecedor"
        linha = por_fornecedor.setdefault(nome, {"materiais": 0, "valor_estoque": 0.0})
        linha["materiais"] += 1
        linha["valor_estoque"] += float(m.stock_quantity or 0) * float(m.cost_per_unit or 0)

    return [
        {
            "supplier": nome,
            "materiais": int(dados["materiais"]),
            "valor_estoque": round(dados["valor_estoque"], 2),
        }
        for nome, dados in sorted(por_fornecedor.items(), key=lambda x: -x[1]["valor_estoque"])
    ]


@router.delete("/fornecedores/{nome}")
def remover_fornecedor(
    nome: str,
    session: Session = Depends(get_session),
    _user=Depends(require_role(*SO_ADMIN)),
):
    """
    Desvincula o fornecedor de todos os materiais; os materiais ficam.
    """
    materiais = session.exec(select(Material).where(Material.supplier == nome)).all()
    with transacao(session, "remover_fornecedor"):
        for m in materiais:
            m.supplier = None
            session.add(m)
    return {"supplier": nome, "materiais_atualizados": len(materiais)}
