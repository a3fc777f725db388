# -*- coding: utf-8 -*-
'''
Aplicação Flask do catálogo de produtos.

Execução em produção:  gunicorn "catalogo.main:create_app()"
'''
import os
import logging

from flask import Blueprint, Flask, current_app, flash, g, jsonify, make_response, redirect, render_template, request, send_file
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException
from werkzeug.utils import secure_filename

from catalogo.auth import (
    GerenciadorSessao,
    ROTA_INICIAL,
    ROTA_LOGIN,
    gerenciador,
    registrar_portao,
    sessao_obrigatoria,
)
from catalogo.catalogo import (
    adicionar_produto,
    buscar_produtos,
    contar_produtos,
    editar_produto,
    excluir_produto,
    importar_produtos,
    pesquisa_rapida,
)
from catalogo.config import Config
from catalogo.database import create_tables, db, garantir_admin, init_db_models
from catalogo.erros import ErroCatalogo, ErroValidacao, LojaIndisponivel, SessaoExpirada, TokenInvalido
from catalogo.planilha import gerar_modelo, ler_planilha

# Configurar logging básico
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

api = Blueprint("api", __name__, url_prefix="/api")
paginas = Blueprint("paginas", __name__)


def _dados_json():
    dados = request.get_json(silent=True)
    return dados if isinstance(dados, dict) else {}

# --- API de autenticação ---

@api.route("/auth/login", methods=["POST"])
def api_login():
    dados = _dados_json()
    gerente = gerenciador()
    sessao = gerente.entrar(dados.get("username"), dados.get("password"))
    resposta = jsonify({"success": True, "user": sessao.usuario()})
    return gerente.gravar_cookie(resposta, sessao)

@api.route("/auth/me", methods=["GET"])
def api_me():
    sessao = gerenciador().sessao_da_requisicao()
    return jsonify({"user": sessao.usuario()})

@api.route("/auth/logout", methods=["POST"])
def api_logout():
    # Também chamado por navigator.sendBeacon no unload: corpo e content-type são ignorados
    resposta = make_response("", 204)
    return gerenciador().apagar_cookie(resposta)

@api.route("/setup", methods=["POST"])
def api_setup():
    username = current_app.config["ADMIN_USERNAME"]
    try:
        _, criado = garantir_admin(username, current_app.config["ADMIN_PASSWORD"])
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Erro ao criar usuário administrador: {e}", exc_info=True)
        raise LojaIndisponivel("Failed to create admin user") from e
    if not criado:
        return jsonify({"message": "Admin user already exists"})
    return jsonify({"message": "Admin user created successfully", "username": username}), 201

# --- API de produtos ---

@api.route("/produtos", methods=["GET"])
@sessao_obrigatoria
def api_buscar_produtos():
    termo = request.args.get("q", "")
    try:
        pagina = int(request.args.get("page", 0))
    except ValueError as e:
        raise ErroValidacao("Página inválida") from e
    resultado = buscar_produtos(termo, pagina, current_app.config["TAMANHO_PAGINA"])
    return jsonify(resultado.to_dict())

@api.route("/produtos/pesquisa", methods=["GET"])
@sessao_obrigatoria
def api_pesquisa_rapida():
    produtos = pesquisa_rapida(request.args.get("q", ""))
    return jsonify({"items": produtos, "totalCount": len(produtos)})

@api.route("/produtos", methods=["POST"])
@sessao_obrigatoria
def api_adicionar_produto():
    dados = _dados_json()
    produto = adicionar_produto(dados.get("sku"), dados.get("descricao"), dados.get("codigo_barras"))
    return jsonify(produto), 201

@api.route("/produtos/<path:sku>", methods=["PUT"])
@sessao_obrigatoria
def api_editar_produto(sku):
    dados = _dados_json()
    produto = editar_produto(sku, dados.get("descricao"), dados.get("codigo_barras"))
    return jsonify(produto)

@api.route("/produtos/<path:sku>", methods=["DELETE"])
@sessao_obrigatoria
def api_excluir_produto(sku):
    excluir_produto(sku)
    return jsonify({"success": True, "totalCount": contar_produtos()})

@api.route("/produtos/importar", methods=["POST"])
@sessao_obrigatoria
def api_importar_produtos():
    if request.is_json:
        linhas = _dados_json().get("rows")
        if not isinstance(linhas, list) or not all(isinstance(linha, dict) for linha in linhas):
            raise ErroValidacao("Envie as linhas em 'rows' como uma lista de objetos")
    else:
        arquivo = request.files.get("arquivo") or request.files.get("file")
        if arquivo is None or not arquivo.filename:
            raise ErroValidacao("Nenhum arquivo enviado")
        linhas = ler_planilha(arquivo.stream, secure_filename(arquivo.filename))

    logger.info(f"Importação iniciada por '{g.sessao.username}' com {len(linhas)} linhas.")
    relatorio = importar_produtos(linhas, tamanho_lote=current_app.config["TAMANHO_LOTE"])
    return jsonify(relatorio.to_dict())

@api.route("/produtos/template", methods=["GET"])
@sessao_obrigatoria
def api_modelo_planilha():
    return send_file(
        gerar_modelo(),
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        as_attachment=True,
        download_name="template-produtos.xlsx",
    )

# --- Páginas ---

@paginas.route("/")
def index():
    return render_template("index.html", usuario=g.sessao.usuario())

@paginas.route(ROTA_LOGIN, methods=["GET", "POST"])
def login():
    if request.method == "POST":
        nome = request.form.get("username", "")
        senha = request.form.get("password", "")
        gerente = gerenciador()
        try:
            sessao = gerente.entrar(nome, senha)
        except ErroCatalogo as e:
            flash(e.mensagem, "danger")
            return render_template("login.html", username=nome), e.status_code
        return gerente.gravar_cookie(redirect(ROTA_INICIAL), sessao)
    return render_template("login.html")

@paginas.route("/logout")
def logout():
    return gerenciador().apagar_cookie(redirect(ROTA_LOGIN))

# --- Tratamento de erros ---

def tratar_erro_catalogo(erro):
    resposta = jsonify(erro.to_dict())
    resposta.status_code = erro.status_code
    if isinstance(erro, (TokenInvalido, SessaoExpirada)):
        gerenciador().apagar_cookie(resposta)
    return resposta

def tratar_erro_inesperado(erro):
    if isinstance(erro, HTTPException):
        return erro
    logger.exception(f"Erro inesperado em {request.method} {request.path}: {erro}")
    return jsonify({"error": "Internal server error"}), 500

def create_app(config=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config:
        app.config.update(config)

    init_db_models(app)
    create_tables(app)

    app.extensions["sessao"] = GerenciadorSessao(
        app.config["SECRET_KEY"],
        ttl_segundos=app.config["SESSAO_TTL_SEGUNDOS"],
        cookie=app.config["SESSAO_COOKIE"],
        cookie_seguro=app.config["COOKIE_SEGURO"],
    )
    registrar_portao(app)

    app.register_blueprint(api)
    app.register_blueprint(paginas)
    app.register_error_handler(ErroCatalogo, tratar_erro_catalogo)
    app.register_error_handler(Exception, tratar_erro_inesperado)

    logger.info("Aplicação do catálogo inicializada.")
    return app

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    create_app().run(host="0.0.0.0", port=port, debug=False)
