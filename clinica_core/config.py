# clinica_core/config.py
import os
import warnings
from pathlib import Path

from dotenv import load_dotenv

# Carrega o .env da raiz do projeto (se existir)
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# URL do banco da clínica.
# Pode ser sobrescrita com a variável de ambiente CLINICA_DB_URL
DB_URL = os.getenv("CLINICA_DB_URL", "sqlite:///./dados_clinica.db")

SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    warnings.warn(
        "SECRET_KEY não definida! Usando chave insegura de desenvolvimento",
        RuntimeWarning,
        stacklevel=2,
    )
    SECRET_KEY = "CHANGE_ME_SUPER_SECRET"

ACCESS_MIN = int(os.getenv("ACCESS_MINUTES", "720"))  # 12h default

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
JSON_LOGS = os.getenv("JSON_LOGS", "").lower() in ("1", "true", "yes")

# Em produção pode ser restrito ao domínio do front
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# Janela (em dias) dos avisos do painel: a receber, confirmados, retornos
ALERTA_DIAS = int(os.getenv("ALERTA_DIAS", "30"))
