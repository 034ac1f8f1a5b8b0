# clinica_core/regras/agenda.py
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Tuple

from pydantic import BaseModel

from clinica_core.db.modelos import (
    Atendimento,
    ConfiguracaoDia,
    DiaBloqueado,
    ModeloAgenda,
    StatusAtendimento,
)

# Não ocupam horário na grade
STATUS_LIVRES = {StatusAtendimento.desmarcado, StatusAtendimento.nao_compareceu}

Intervalo = Tuple[datetime, datetime]


class Expediente(BaseModel):
    data: date
    start_time: str
    end_time: str
    slot_minutes: int
    origem: str  # "modelo" | "configuracao"


class Slot(BaseModel):
    start: str
    end: str
    livre: bool
    atendimentos: List[int] = []


def hora_valida(s: Optional[str]) -> bool:
    if not s:
        return False
    try:
        hh, mm = map(int, s.split(":")[:2])
    except ValueError:
        return False
    return 0 <= hh <= 23 and 0 <= mm <= 59


def _hhmm(d: date, s: str) -> datetime:
    hh, mm = map(int, s.split(":")[:2])
    return datetime(d.year, d.month, d.day, hh, mm, 0)


def _merge(intervals: List[Intervalo]) -> List[Intervalo]:
    if not intervals:
        return []
    intervals = sorted(intervals, key=lambda x: x[0])
    res = [intervals[0]]
    for s, e in intervals[1:]:
        ls, le = res[-1]
        if s <= le:
            res[-1] = (ls, max(le, e))
        else:
            res.append((s, e))
    return res


def _subtract(base: List[Intervalo], busy: List[Intervalo]) -> List[Intervalo]:
    """Tira os ocupados de base; devolve os buracos livres."""
    free: List[Intervalo] = []
    for bs, be in base:
        cur = bs
        for os_, oe in (i for i in busy if i[0] < be and i[1] > bs):
            if os_ > cur:
                free.append((cur, min(os_, be)))
            cur = max(cur, oe)
            if cur >= be:
                break
        if cur < be:
            free.append((cur, be))
    return free


def expediente_do_dia(
    data: date,
    modelos: Iterable[ModeloAgenda],
    configuracoes: Iterable[ConfiguracaoDia],
    bloqueios: Iterable[DiaBloqueado],
) -> Optional[Expediente]:
    """
    Janela de atendimento efetiva do dia.

    Dia bloqueado não abre; configuração do dia tem prioridade sobre o
    modelo semanal (e pode fechar o dia); sem nada disso vale o modelo
    ativo do dia da semana.
    """
    if any(b.date == data for b in bloqueios):
        return None

    for c in configuracoes:
        if c.date == data:
            if c.is_closed:
                return None
            return Expediente(
                data=data,
                start_time=c.start_time,
                end_time=c.end_time,
                slot_minutes=c.slot_minutes,
                origem="configuracao",
            )

    for m in modelos:
        if m.weekday == data.weekday() and m.is_active:
            return Expediente(
                data=data,
                start_time=m.start_time,
                end_time=m.end_time,
                slot_minutes=m.slot_minutes,
                origem="modelo",
            )
    return None


def ocupa_horario(a: Atendimento) -> bool:
    return a.status not in STATUS_LIVRES and hora_valida(a.time)


def intervalo_atendimento(a: Atendimento, slot_minutes: int) -> Intervalo:
    inicio = _hhmm(a.date, a.time)
    if hora_valida(a.end_time):
        fim = _hhmm(a.date, a.end_time)
        if fim > inicio:
            return inicio, fim
    return inicio, inicio + timedelta(minutes=slot_minutes)


def gerar_slots(
    data: date,
    expediente: Optional[Expediente],
    atendimentos: Iterable[Atendimento],
) -> List[Slot]:
    """
    Corta o expediente em slots de `slot_minutes`. Cada slot leva os ids dos
    atendimentos que começam nele e fica livre só se nenhum atendimento
    ocupa qualquer parte dele.
    """
    if expediente is None:
        return []

    passo = timedelta(minutes=expediente.slot_minutes)
    base = [(_hhmm(data, expediente.start_time), _hhmm(data, expediente.end_time))]

    do_dia = [a for a in atendimentos if a.date == data and ocupa_horario(a)]
    busy = _merge([intervalo_atendimento(a, expediente.slot_minutes) for a in do_dia])
    free = _subtract(base, busy)

    slots: List[Slot] = []
    cur, fim = base[0]
    while cur + passo <= fim:
        nxt = cur + passo
        livre = any(fs <= cur and nxt <= fe for fs, fe in free)
        ids = [
            a.id for a in do_dia
            if cur <= _hhmm(data, a.time) < nxt
        ]
        slots.append(
            Slot(
                start=cur.strftime("%H:%M"),
                end=nxt.strftime("%H:%M"),
                livre=livre,
                atendimentos=ids,
            )
        )
        cur = nxt
    return slots
