'''
Este módulo inicializa a extensão SQLAlchemy e define os modelos do banco de dados.
'''
from flask_sqlalchemy import SQLAlchemy
from werkzeug.security import generate_password_hash
import logging

logger = logging.getLogger(__name__)

# Inicializa a extensão SQLAlchemy sem vincular a uma aplicação Flask ainda.
# A vinculação ocorre em create_app com init_db_models(app).
db = SQLAlchemy()

# --- Modelos do Banco de Dados (SQLAlchemy) ---

class Usuario(db.Model):
    __tablename__ = "users"
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String, unique=True, nullable=False)
    password = db.Column(db.String, nullable=False)
    nome = db.Column(db.String)

    def to_dict(self):
        return {"id": self.id, "username": self.username, "nome": self.nome}

class Produto(db.Model):
    __tablename__ = "produtos"
    sku = db.Column(db.String, primary_key=True)
    descricao = db.Column(db.String, nullable=False)
    codigo_barras = db.Column(db.String, nullable=False)

    def to_dict(self):
        return {"sku": self.sku, "descricao": self.descricao, "codigo_barras": self.codigo_barras}

def init_db_models(app):
    ''' Vincula o objeto db à aplicação Flask. '''
    db.init_app(app)
    logger.info("SQLAlchemy inicializado e vinculado à aplicação Flask.")

def create_tables(app):
    ''' Cria as tabelas no banco de dados se não existirem. '''
    try:
        with app.app_context():
            logger.info("Verificando/Criando tabelas do banco de dados...")
            db.create_all()
            logger.info("Tabelas verificadas/criadas com sucesso.")
    except Exception as e:
        logger.error(f"Erro CRÍTICO ao criar tabelas do banco de dados: {e}", exc_info=True)
        raise

def garantir_admin(username, senha, nome="Administrador"):
    '''
    Cria o usuário administrador se ainda não existir.
    Retorna (usuario, criado). A senha é gravada como hash do werkzeug.
    '''
    existente = db.session.query(Usuario).filter_by(username=username).first()
    if existente:
        logger.info(f"Usuário administrador '{username}' já existe.")
        return existente, False
    try:
        usuario = Usuario(username=username, password=generate_password_hash(senha), nome=nome)
        db.session.add(usuario)
        db.session.commit()
        logger.info(f"Usuário administrador '{username}' criado (ID: {usuario.id}).")
        return usuario, True
    except Exception:
        db.session.rollback()
        raise
