# clinica_core/core_app.py
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from clinica_core.config import CORS_ORIGINS, JSON_LOGS, LOG_LEVEL
from clinica_core.db.conexion import init_db
from clinica_core.erros import ErroClinica
from clinica_core.logging_config import configure_logging
from clinica_core.servicos import (
    autenticacao,
    pacientes,
    procedimentos,
    atendimentos,
    parcelas,
    estoque,
    despesas,
    metas,
    agenda,
    relatorios,
    painel,
)

configure_logging(level=LOG_LEVEL, json_logs=JSON_LOGS)
logger = structlog.get_logger(__name__)

app = FastAPI(title="Clínica API")


# ---------- CORS ----------

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- Erros de negócio ----------

@app.exception_handler(ErroClinica)
def erro_clinica_handler(request: Request, exc: ErroClinica) -> JSONResponse:
    """
    Todo ErroClinica chega ao front como {"detail": mensagem}.
    """
    if exc.status_code >= 500:
        logger.error("erro_interno", path=request.url.path, detail=exc.mensagem)
    else:
        logger.info("requisicao_recusada", path=request.url.path, status=exc.status_code, detail=exc.mensagem)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.mensagem})


# ---------- Eventos de arranque ----------

@app.on_event("startup")
def on_startup() -> None:
    """
    Inicializa o banco da clínica ao subir a app.
    """
    init_db()
    logger.info("app_iniciada")


app.include_router(autenticacao.router, prefix="/api/auth", tags=["Autenticacao"])
app.include_router(pacientes.router, prefix="/api/pacientes", tags=["Pacientes"])
app.include_router(procedimentos.router, prefix="/api/procedimentos", tags=["Procedimentos"])
app.include_router(atendimentos.router, prefix="/api/atendimentos", tags=["Atendimentos"])
app.include_router(parcelas.router, prefix="/api/parcelas", tags=["Parcelas"])
app.include_router(estoque.router, prefix="/api/estoque", tags=["Estoque"])
app.include_router(despesas.router, prefix="/api/despesas", tags=["Despesas"])
app.include_router(metas.router, prefix="/api/metas", tags=["Metas"])
app.include_router(agenda.router, prefix="/api/agenda", tags=["Agenda"])
app.include_router(relatorios.router, prefix="/api/relatorios", tags=["Relatorios"])
app.include_router(painel.router, prefix="/api/painel", tags=["Painel"])


# ---------- Endpoint de saúde básico ----------

@app.get("/api/saude")
def check_saude():
    """
    Endpoint de teste para verificar que a API está no ar.
    """
    return {
        "estado": "ok",
        "mensagem": "API da clínica funcionando",
    }
