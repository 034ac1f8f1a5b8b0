# clinica_core/erros.py
from typing import Any

from fastapi import status


class ErroClinica(Exception):
    """
    Base dos erros de negócio da clínica.
    Cada subclasse carrega o status HTTP com que deve chegar ao front.
    """
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, mensagem: str):
        super().__init__(mensagem)
        self.mensagem = mensagem


class ErroValidacao(ErroClinica):
    """
    Entrada inválida. Sempre levantado antes de qualquer escrita no banco.
    """
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class NaoEncontrado(ErroClinica):
    status_code = status.HTTP_404_NOT_FOUND


class ErroConflito(ErroClinica):
    status_code = status.HTTP_409_CONFLICT


class ErroPersistencia(ErroClinica):
    """
    O banco rejeitou uma escrita. A transação já foi desfeita;
    o detalhe técnico vai para o log, não para o usuário.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, mensagem: str = "Erro ao salvar os dados. Tente novamente."):
        super().__init__(mensagem)


def coagir_id(valor: Any, nome: str = "ID") -> int:
    """
    Converte um identificador para int; falha vira ErroValidacao, não crash.
    """
    if isinstance(valor, bool):
        raise ErroValidacao(f"{nome} inválido.")
    try:
        convertido = int(str(valor).strip())
    except (TypeError, ValueError):
        raise ErroValidacao(f"{nome} inválido.")
    if convertido <= 0:
        raise ErroValidacao(f"{nome} inválido.")
    return convertido
