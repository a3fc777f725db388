# -*- coding: utf-8 -*-
'''
Leitura da planilha de importação e geração do modelo para download.
Formato: cabeçalho na primeira linha e as colunas SKU, Descricao, CodigoBarras.
'''
import io
import os
import logging

import pandas as pd

from catalogo.erros import ErroValidacao

logger = logging.getLogger(__name__)

CODIFICACOES_CSV = ("utf-8-sig", "latin-1")  # Excel no Windows exporta CSV em cp1252

COLUNAS = ["SKU", "Descricao", "CodigoBarras"]
EXTENSOES_ACEITAS = (".xlsx", ".csv")
ABA_MODELO = "Produtos"
LARGURAS_MODELO = {"A": 15, "B": 50, "C": 20}

EXEMPLOS_MODELO = [
    {"SKU": "65041", "Descricao": "CHAPA USADA NA S-408 / S-416 / SC-10408", "CodigoBarras": "7898912941459"},
    {"SKU": "65107", "Descricao": "PARAFUSO 3/8 X 3/4 PARA ABRACADEIRA", "CodigoBarras": "7899143613016"},
    {"SKU": "65109", "Descricao": "PARAFUSO M-10 X 20 PARA ABRACADEIRA", "CodigoBarras": "7898902333363"},
]


def _ler_csv(arquivo):
    conteudo = arquivo.read()
    for codificacao in CODIFICACOES_CSV:
        try:
            texto = conteudo.decode(codificacao)
            break
        except UnicodeDecodeError:
            logger.warning(f"CSV não está em {codificacao}, tentando a próxima codificação.")
    # Linhas vazias ficam no DataFrame para não deslocar a numeração
    return pd.read_csv(io.StringIO(texto), dtype=str, keep_default_na=False, skip_blank_lines=False)


def ler_planilha(arquivo, nome_arquivo):
    '''
    Lê a primeira aba (ou o CSV) e devolve uma lista de dicionários com
    sku, descricao, codigo_barras e o número da linha na planilha.
    Tudo é lido como texto para preservar zeros à esquerda.
    '''
    extensao = os.path.splitext(nome_arquivo or "")[1].lower()
    if extensao not in EXTENSOES_ACEITAS:
        raise ErroValidacao("Por favor, selecione um arquivo Excel válido (.xlsx) ou CSV")

    try:
        if extensao == ".csv":
            df = _ler_csv(arquivo)
        else:
            df = pd.read_excel(arquivo, sheet_name=0, dtype=str, engine="openpyxl")
    except Exception as e:
        logger.error(f"Erro ao ler planilha '{nome_arquivo}': {e}", exc_info=True)
        raise ErroValidacao("Não foi possível ler o arquivo. Verifique se é uma planilha válida.") from e

    if df.empty:
        raise ErroValidacao("O arquivo Excel está vazio ou não contém dados válidos.")

    df = df.rename(columns=lambda coluna: str(coluna).strip())
    if all(coluna in df.columns for coluna in COLUNAS):
        df = df[COLUNAS].copy()
    elif len(df.columns) >= len(COLUNAS):
        # Cabeçalho diferente do modelo: usa as três primeiras colunas na ordem
        df = df.iloc[:, :len(COLUNAS)].copy()
        df.columns = COLUNAS
    else:
        raise ErroValidacao("A planilha deve ter as colunas SKU, Descricao e CodigoBarras.")

    df = df.fillna("")
    df["linha"] = df.index + 2
    # Linhas totalmente em branco são ignoradas, sem virar erro
    df = df[(df[COLUNAS].apply(lambda coluna: coluna.str.strip()) != "").any(axis=1)]

    linhas = [
        {"sku": r.SKU, "descricao": r.Descricao, "codigo_barras": r.CodigoBarras, "linha": int(r.linha)}
        for r in df.itertuples(index=False)
    ]
    logger.info(f"Planilha '{nome_arquivo}' lida: {len(linhas)} linhas de dados.")
    return linhas


def gerar_modelo():
    ''' Gera o template-produtos.xlsx em memória. '''
    df = pd.DataFrame(EXEMPLOS_MODELO, columns=COLUNAS)
    saida = io.BytesIO()
    with pd.ExcelWriter(saida, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name=ABA_MODELO)
        aba = writer.sheets[ABA_MODELO]
        for letra, largura in LARGURAS_MODELO.items():
            aba.column_dimensions[letra].width = largura
    saida.seek(0)
    return saida
