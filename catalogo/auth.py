# -*- coding: utf-8 -*-
'''
Gerenciamento da sessão do usuário.

O login procura o usuário na tabela `users` e emite um token assinado com os
dados da sessão (userId, username, displayName, issuedAt). O token viaja no
cookie `auth-token` e vale por 7 dias a partir do login; não existe lista de
revogação no servidor, então a expiração é a única invalidação verificada.
'''
import hmac
import time
import logging
from dataclasses import dataclass
from functools import wraps
from typing import Optional

from flask import current_app, g, redirect, request
from itsdangerous import BadData, URLSafeSerializer
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash

from catalogo.database import db, Usuario
from catalogo.erros import (
    CredenciaisInvalidas,
    ErroAutenticacao,
    ErroValidacao,
    LojaIndisponivel,
    NaoAutenticado,
    SessaoExpirada,
    TokenInvalido,
)

logger = logging.getLogger(__name__)

SESSAO_TTL_SEGUNDOS = 60 * 60 * 24 * 7  # 7 dias
ROTA_LOGIN = "/login"
ROTA_INICIAL = "/"
PREFIXOS_ISENTOS = ("/api", "/static")
PREFIXOS_HASH = ("pbkdf2:", "scrypt:")


@dataclass
class Sessao:
    user_id: int
    username: str
    nome: Optional[str]
    emitida_em: int  # epoch em milissegundos

    def to_payload(self):
        return {
            "userId": self.user_id,
            "username": self.username,
            "displayName": self.nome,
            "issuedAt": self.emitida_em,
        }

    def usuario(self):
        return {"id": self.user_id, "username": self.username, "nome": self.nome}


def senha_confere(armazenada, informada):
    '''
    Compara a senha informada com a armazenada. Senhas antigas ficam em texto
    puro na tabela; as gravadas pelo setup são hashes do werkzeug.
    '''
    if armazenada.startswith(PREFIXOS_HASH):
        return check_password_hash(armazenada, informada)
    return hmac.compare_digest(armazenada.encode("utf-8"), informada.encode("utf-8"))


class GerenciadorSessao:
    def __init__(self, segredo, ttl_segundos=SESSAO_TTL_SEGUNDOS, cookie="auth-token",
                 cookie_seguro=False, relogio=time.time):
        self._serializer = URLSafeSerializer(segredo, salt="auth-token")
        self.ttl_segundos = ttl_segundos
        self.cookie = cookie
        self.cookie_seguro = cookie_seguro
        self._relogio = relogio

    def _agora_ms(self):
        return int(self._relogio() * 1000)

    def entrar(self, username, password):
        ''' Valida as credenciais e devolve uma nova Sessao. Não grava cookie. '''
        if not isinstance(username, str) or not isinstance(password, str) or not username or not password:
            raise ErroValidacao("Username and password are required")

        try:
            usuario = db.session.query(Usuario).filter_by(username=username).first()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Erro ao consultar usuário '{username}' no login: {e}", exc_info=True)
            raise LojaIndisponivel() from e

        if not usuario or not senha_confere(usuario.password, password):
            logger.warning(f"Falha de login para o usuário '{username}'.")
            raise CredenciaisInvalidas()

        sessao = Sessao(usuario.id, usuario.username, usuario.nome, self._agora_ms())
        logger.info(f"Usuário '{usuario.username}' (ID: {usuario.id}) logado com sucesso.")
        return sessao

    def emitir(self, sessao):
        return self._serializer.dumps(sessao.to_payload())

    def validar(self, token):
        if not token:
            raise NaoAutenticado()
        try:
            payload = self._serializer.loads(token)
        except BadData:
            raise TokenInvalido()
        if not isinstance(payload, dict):
            raise TokenInvalido()

        emitida_em = payload.get("issuedAt")
        # bool é subclasse de int
        if isinstance(emitida_em, bool) or not isinstance(emitida_em, (int, float)):
            raise TokenInvalido()
        try:
            sessao = Sessao(
                user_id=int(payload["userId"]),
                username=str(payload["username"]),
                nome=payload.get("displayName"),
                emitida_em=int(emitida_em),
            )
        except (KeyError, TypeError, ValueError):
            raise TokenInvalido()

        if self._agora_ms() - sessao.emitida_em > self.ttl_segundos * 1000:
            raise SessaoExpirada()
        return sessao

    def sessao_da_requisicao(self):
        return self.validar(request.cookies.get(self.cookie))

    def gravar_cookie(self, resposta, sessao):
        resposta.set_cookie(
            self.cookie,
            self.emitir(sessao),
            max_age=self.ttl_segundos,
            path="/",
            secure=self.cookie_seguro,
            httponly=True,
            samesite="Lax",
        )
        return resposta

    def apagar_cookie(self, resposta):
        resposta.delete_cookie(self.cookie, path="/", secure=self.cookie_seguro, httponly=True, samesite="Lax")
        return resposta


def gerenciador():
    return current_app.extensions["sessao"]


def sessao_obrigatoria(view):
    ''' Rotas de API validam a própria sessão e respondem 401 em JSON em vez de redirecionar. '''
    @wraps(view)
    def wrapper(*args, **kwargs):
        g.sessao = gerenciador().sessao_da_requisicao()
        return view(*args, **kwargs)
    return wrapper


def portao_rotas():
    '''
    Executado antes de cada requisição de página. Sem sessão válida vai para o
    login; com sessão válida o login volta para a página inicial.
    '''
    caminho = request.path
    if any(caminho == prefixo or caminho.startswith(prefixo + "/") for prefixo in PREFIXOS_ISENTOS):
        return None

    gerente = gerenciador()
    try:
        g.sessao = gerente.sessao_da_requisicao()
    except ErroAutenticacao:
        g.sessao = None

    if g.sessao is None and caminho != ROTA_LOGIN:
        resposta = redirect(ROTA_LOGIN)
        if request.cookies.get(gerente.cookie):
            gerente.apagar_cookie(resposta)
        return resposta
    if g.sessao is not None and caminho == ROTA_LOGIN:
        return redirect(ROTA_INICIAL)
    return None


def registrar_portao(app):
    app.before_request(portao_rotas)
