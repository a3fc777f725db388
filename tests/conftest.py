"""Shared fixtures: app on a temporary SQLite database, logged-in clients."""

import io
from urllib.parse import urlsplit

import pytest

from catalogo.database import Produto, Usuario, db
from catalogo.main import create_app


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'catalogo_teste.db'}",
        "SECRET_KEY": "chave-de-teste",
        "TAMANHO_PAGINA": 200,
        "TAMANHO_LOTE": 50,
    })
    with app.app_context():
        db.session.add(Usuario(username="maria", password="segredo", nome="Maria Souza"))
        db.session.commit()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def logado(client):
    resposta = client.post("/api/auth/login", json={"username": "maria", "password": "segredo"})
    assert resposta.status_code == 200
    return client


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield


@pytest.fixture
def criar_produtos(app):
    def _criar(quantidade, prefixo="P"):
        with app.app_context():
            for i in range(quantidade):
                db.session.add(Produto(sku=f"{prefixo}{i:04d}", descricao=f"Produto {i}", codigo_barras=f"789{i:010d}"))
            db.session.commit()
    return _criar


class RespostaTeste:
    """Wraps a Flask test response with the parts of requests.Response the client uses."""

    def __init__(self, resposta):
        self._resposta = resposta
        self.status_code = resposta.status_code
        self.content = resposta.data

    def json(self):
        dados = self._resposta.get_json(silent=True)
        if dados is None:
            raise ValueError("resposta sem JSON")
        return dados


class SessaoHttpTeste:
    """requests.Session stand-in that routes calls into the Flask test client."""

    def __init__(self, client):
        self.client = client
        self.chamadas = []

    def request(self, metodo, url, timeout=None, params=None, json=None, files=None, data=None):
        partes = urlsplit(url)
        self.chamadas.append((metodo, partes.path))
        kwargs = {}
        if params:
            kwargs["query_string"] = params
        if json is not None:
            kwargs["json"] = json
        if files:
            kwargs["data"] = {
                campo: (io.BytesIO(arquivo.read()), nome) for campo, (nome, arquivo) in files.items()
            }
            kwargs["content_type"] = "multipart/form-data"
        elif data is not None:
            kwargs["data"] = data
            kwargs["content_type"] = "text/plain;charset=UTF-8"
        return RespostaTeste(self.client.open(partes.path, method=metodo, **kwargs))


class TimerFalso:
    """threading.Timer replacement fired manually by the test."""

    criados = []

    def __init__(self, intervalo, funcao, args=None, kwargs=None):
        self.intervalo = intervalo
        self.funcao = funcao
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.iniciado = False
        self.cancelado = False
        self.daemon = False
        TimerFalso.criados.append(self)

    def start(self):
        self.iniciado = True

    def cancel(self):
        self.cancelado = True

    def disparar(self):
        if not self.cancelado:
            self.funcao(*self.args, **self.kwargs)


@pytest.fixture
def timers():
    TimerFalso.criados = []
    return TimerFalso


@pytest.fixture
def sessao_http(client):
    return SessaoHttpTeste(client)
