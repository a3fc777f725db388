# -*- coding: utf-8 -*-
'''
Configuração da aplicação lida de variáveis de ambiente.
'''
import os
import logging

logger = logging.getLogger(__name__)


def _database_url():
    url = os.environ.get("DATABASE_URL")
    if not url:
        logger.critical("### Variável de ambiente DATABASE_URL não definida! Usando SQLite local (apenas desenvolvimento). ###")
        return "sqlite:///catalogo.db"
    # Render/Heroku entregam postgres://, o SQLAlchemy exige postgresql://
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


class Config:
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", "catalogo_secret_key_default_dev_only_unsafe")

    # Sessão
    SESSAO_COOKIE = "auth-token"
    SESSAO_TTL_SEGUNDOS = int(os.environ.get("SESSAO_TTL_DIAS", "7")) * 24 * 60 * 60
    COOKIE_SEGURO = os.environ.get("COOKIE_SEGURO", "0") == "1"

    # Catálogo
    TAMANHO_PAGINA = int(os.environ.get("TAMANHO_PAGINA", "200"))
    TAMANHO_LOTE = int(os.environ.get("TAMANHO_LOTE", "50"))
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024

    # Usuário administrador criado por /api/setup
    ADMIN_USERNAME = os.environ.get("ADMIN_USERNAME", "admin")
    ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "admin2025")
