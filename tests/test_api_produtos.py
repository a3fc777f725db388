"""Tests for the product HTTP endpoints."""

import io

import pandas as pd
import pytest

from catalogo.planilha import COLUNAS


def _planilha(linhas):
    saida = io.BytesIO()
    pd.DataFrame(linhas, columns=COLUNAS).to_excel(saida, index=False, engine="openpyxl")
    saida.seek(0)
    return saida


@pytest.mark.parametrize("metodo,caminho", [
    ("GET", "/api/produtos"),
    ("GET", "/api/produtos/pesquisa?q=a"),
    ("POST", "/api/produtos"),
    ("PUT", "/api/produtos/R-477"),
    ("DELETE", "/api/produtos/R-477"),
    ("POST", "/api/produtos/importar"),
    ("GET", "/api/produtos/template"),
])
def test_product_endpoints_require_session(client, metodo, caminho):
    resposta = client.open(caminho, method=metodo)
    assert resposta.status_code == 401
    assert resposta.get_json() == {"error": "Not authenticated"}


def test_search_endpoint_pages(logado, criar_produtos):
    criar_produtos(250)
    primeira = logado.get("/api/produtos").get_json()
    assert len(primeira["items"]) == 200
    assert primeira["totalCount"] == 250
    assert primeira["hasMore"] is True
    assert primeira["page"] == 0

    segunda = logado.get("/api/produtos?page=1").get_json()
    assert len(segunda["items"]) == 50
    assert segunda["hasMore"] is False

    filtrada = logado.get("/api/produtos?q=p000").get_json()
    assert filtrada["totalCount"] == 10


def test_search_endpoint_negative_page(logado):
    assert logado.get("/api/produtos?page=-1").status_code == 400


def test_search_endpoint_non_numeric_page(logado):
    resposta = logado.get("/api/produtos?page=abc")
    assert resposta.status_code == 400
    assert resposta.get_json() == {"error": "Página inválida"}


def test_add_edit_delete_flow(logado):
    criado = logado.post("/api/produtos", json={"sku": "R-477", "descricao": "desc", "codigo_barras": "123"})
    assert criado.status_code == 201
    assert criado.get_json()["sku"] == "R-477"

    duplicado = logado.post("/api/produtos", json={"sku": "R-477", "descricao": "other", "codigo_barras": "456"})
    assert duplicado.status_code == 409
    assert duplicado.get_json() == {"error": "SKU já existe no banco de dados"}

    editado = logado.put("/api/produtos/R-477", json={"descricao": "new desc", "codigo_barras": "789"})
    assert editado.status_code == 200
    assert editado.get_json() == {"sku": "R-477", "descricao": "new desc", "codigo_barras": "789"}

    excluido = logado.delete("/api/produtos/R-477")
    assert excluido.status_code == 200
    assert excluido.get_json() == {"success": True, "totalCount": 0}

    assert logado.get("/api/produtos?q=R-477").get_json()["items"] == []
    assert logado.delete("/api/produtos/R-477").status_code == 404
    assert logado.put("/api/produtos/R-477", json={"descricao": "x", "codigo_barras": "1"}).status_code == 404


def test_add_validation_error(logado):
    resposta = logado.post("/api/produtos", json={"sku": "S", "descricao": " ", "codigo_barras": "1"})
    assert resposta.status_code == 400
    assert resposta.get_json() == {"error": "Todos os campos são obrigatórios"}


def test_quick_search_endpoint(logado):
    logado.post("/api/produtos", json={"sku": "65107", "descricao": "PARAFUSO 3/8", "codigo_barras": "7899143613016"})
    dados = logado.get("/api/produtos/pesquisa?q=parafuso").get_json()
    assert dados["totalCount"] == 1
    assert dados["items"][0]["sku"] == "65107"
    assert logado.get("/api/produtos/pesquisa?q=").get_json()["items"] == []


def test_import_spreadsheet_endpoint(logado):
    arquivo = _planilha([["A", "", "1"], ["B", "d", "2"]])
    resposta = logado.post(
        "/api/produtos/importar",
        data={"arquivo": (arquivo, "produtos.xlsx")},
        content_type="multipart/form-data",
    )
    assert resposta.status_code == 200
    assert resposta.get_json() == {
        "successCount": 1,
        "totalRowsConsidered": 2,
        "errors": ["Linha 2: Campos obrigatórios faltando (SKU, Descricao, CodigoBarras)"],
        "partial": True,
    }

    segunda = logado.post(
        "/api/produtos/importar",
        data={"arquivo": (_planilha([["B", "d2", "3"]]), "produtos.xlsx")},
        content_type="multipart/form-data",
    )
    assert segunda.get_json()["successCount"] == 1
    itens = logado.get("/api/produtos").get_json()["items"]
    assert itens == [{"sku": "B", "descricao": "d2", "codigo_barras": "3"}]


def test_import_json_rows_endpoint(logado):
    resposta = logado.post("/api/produtos/importar", json={"rows": [
        {"sku": "J1", "descricao": "d", "codigo_barras": "1"},
        {"sku": "J2", "descricao": "d", "codigo_barras": ""},
    ]})
    dados = resposta.get_json()
    assert dados["successCount"] == 1
    assert dados["errors"] == ["Linha 3: Campos obrigatórios faltando (SKU, Descricao, CodigoBarras)"]

    assert logado.post("/api/produtos/importar", json={"rows": "nada"}).status_code == 400


def test_import_without_file(logado):
    resposta = logado.post("/api/produtos/importar", data={}, content_type="multipart/form-data")
    assert resposta.status_code == 400
    assert resposta.get_json() == {"error": "Nenhum arquivo enviado"}


def test_import_wrong_file_type(logado):
    resposta = logado.post(
        "/api/produtos/importar",
        data={"arquivo": (io.BytesIO(b"abc"), "produtos.pdf")},
        content_type="multipart/form-data",
    )
    assert resposta.status_code == 400


def test_template_download(logado):
    resposta = logado.get("/api/produtos/template")
    assert resposta.status_code == 200
    assert "template-produtos.xlsx" in resposta.headers["Content-Disposition"]
    df = pd.read_excel(io.BytesIO(resposta.data), dtype=str, engine="openpyxl")
    assert list(df.columns) == COLUNAS
    assert len(df) == 3
