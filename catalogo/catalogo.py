# -*- coding: utf-8 -*-
'''
Operações do catálogo de produtos: busca paginada, pesquisa rápida, inclusão,
edição, exclusão e importação em lote.

Erros do SQLAlchemy não saem deste módulo: a sessão é desfeita, o erro vai
para o log e o chamador recebe uma das classes de catalogo.erros.
'''
import enum
import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from catalogo.database import db, Produto
from catalogo.erros import ErroConflito, ErroValidacao, LojaIndisponivel, NaoEncontrado

logger = logging.getLogger(__name__)

TAMANHO_PAGINA = 200
TAMANHO_LOTE = 50
LINHA_INICIAL = 2  # linha 1 da planilha é o cabeçalho
MSG_CAMPOS_FALTANDO = "Campos obrigatórios faltando (SKU, Descricao, CodigoBarras)"
MSG_NENHUM_VALIDO = "Nenhum produto válido encontrado no arquivo."


@dataclass
class ResultadoBusca:
    itens: list
    total: int
    tem_mais: bool
    pagina: int

    def to_dict(self):
        return {"items": self.itens, "totalCount": self.total, "hasMore": self.tem_mais, "page": self.pagina}


def _texto(valor):
    if valor is None:
        return ""
    return str(valor).strip()


def _padrao_like(termo):
    escapado = termo.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escapado}%"


def _exigir(**campos):
    valores = {nome: _texto(valor) for nome, valor in campos.items()}
    faltando = [nome for nome, valor in valores.items() if not valor]
    if faltando:
        raise ErroValidacao("Todos os campos são obrigatórios")
    return valores


def _falha_banco(operacao, erro):
    db.session.rollback()
    logger.error(f"Erro ao {operacao} (SQLAlchemy): {erro}", exc_info=True)
    return LojaIndisponivel()


# --- Busca ---

def buscar_produtos(termo="", pagina=0, tamanho_pagina=TAMANHO_PAGINA):
    '''
    Busca paginada ordenada por SKU. Com termo, filtra por SKU contendo o termo
    (sem diferenciar maiúsculas). `tem_mais` só é verdadeiro quando a página
    veio cheia e ainda há registros depois dela.
    '''
    if pagina < 0:
        raise ErroValidacao("Página inválida")
    termo = _texto(termo)
    try:
        query = db.session.query(Produto)
        if termo:
            query = query.filter(db.func.lower(Produto.sku).like(_padrao_like(termo), escape="\\"))
        total = query.count()
        produtos = query.order_by(Produto.sku.asc()) \
                        .offset(pagina * tamanho_pagina) \
                        .limit(tamanho_pagina).all()
    except SQLAlchemyError as e:
        raise _falha_banco(f"buscar produtos (termo '{termo}', página {pagina})", e) from e

    tem_mais = len(produtos) >= tamanho_pagina and (pagina + 1) * tamanho_pagina < total
    return ResultadoBusca([p.to_dict() for p in produtos], total, tem_mais, pagina)


def pesquisa_rapida(termo):
    ''' Pesquisa única por SKU, descrição ou código de barras. Termo vazio não busca nada. '''
    termo = _texto(termo)
    if not termo:
        return []
    padrao = _padrao_like(termo)
    try:
        produtos = db.session.query(Produto).filter(
            db.or_(
                db.func.lower(Produto.sku).like(padrao, escape="\\"),
                db.func.lower(Produto.descricao).like(padrao, escape="\\"),
                db.func.lower(Produto.codigo_barras).like(padrao, escape="\\"),
            )
        ).order_by(Produto.sku.asc()).all()
    except SQLAlchemyError as e:
        raise _falha_banco(f"pesquisar produtos (termo '{termo}')", e) from e
    return [p.to_dict() for p in produtos]


def contar_produtos():
    try:
        return db.session.query(Produto).count()
    except SQLAlchemyError as e:
        raise _falha_banco("contar produtos", e) from e


# --- Alterações ---

def adicionar_produto(sku, descricao, codigo_barras):
    dados = _exigir(sku=sku, descricao=descricao, codigo_barras=codigo_barras)
    try:
        if db.session.get(Produto, dados["sku"]) is not None:
            logger.warning(f"Tentativa de adicionar SKU existente: {dados['sku']}")
            raise ErroConflito()
        produto = Produto(**dados)
        db.session.add(produto)
        db.session.commit()
    except IntegrityError as e:
        # Outro cliente gravou o mesmo SKU entre a consulta e o commit
        db.session.rollback()
        logger.warning(f"SKU {dados['sku']} rejeitado pela restrição de unicidade: {e.orig}")
        raise ErroConflito() from e
    except SQLAlchemyError as e:
        raise _falha_banco(f"adicionar produto SKU {dados['sku']}", e) from e

    logger.info(f"Produto SKU {produto.sku} adicionado.")
    return produto.to_dict()


def editar_produto(sku, descricao, codigo_barras):
    ''' O SKU só localiza o registro; apenas descrição e código de barras mudam. '''
    sku = _texto(sku)
    if not sku:
        raise ErroValidacao("SKU é obrigatório")
    dados = _exigir(descricao=descricao, codigo_barras=codigo_barras)
    try:
        produto = db.session.get(Produto, sku)
        if produto is None:
            raise NaoEncontrado(f"Produto {sku} não encontrado")
        produto.descricao = dados["descricao"]
        produto.codigo_barras = dados["codigo_barras"]
        db.session.commit()
    except SQLAlchemyError as e:
        raise _falha_banco(f"editar produto SKU {sku}", e) from e

    logger.info(f"Produto SKU {sku} atualizado.")
    return produto.to_dict()


def excluir_produto(sku):
    sku = _texto(sku)
    try:
        produto = db.session.get(Produto, sku) if sku else None
        if produto is None:
            logger.warning(f"Tentativa de excluir SKU inexistente: {sku}")
            raise NaoEncontrado(f"Produto {sku} não encontrado")
        db.session.delete(produto)
        db.session.commit()
    except SQLAlchemyError as e:
        raise _falha_banco(f"excluir produto SKU {sku}", e) from e
    logger.info(f"Produto SKU {sku} excluído.")


# --- Importação em lote ---

class EstadoImportacao(enum.Enum):
    OCIOSO = "ocioso"
    IMPORTANDO = "importando"
    CONCLUIDO = "concluido"


@dataclass
class RelatorioImportacao:
    sucesso: int = 0
    total: int = 0
    erros: list = field(default_factory=list)

    @property
    def parcial(self):
        return self.sucesso > 0 and bool(self.erros)

    def to_dict(self):
        return {
            "successCount": self.sucesso,
            "totalRowsConsidered": self.total,
            "errors": list(self.erros),
            "partial": self.parcial,
        }


def validar_linhas(linhas, linha_inicial=LINHA_INICIAL):
    '''
    Separa as linhas válidas das inválidas. Cada linha é um dicionário com
    sku, descricao e codigo_barras; a chave opcional `linha` traz o número
    real da linha na planilha.
    '''
    validos, erros = [], []
    for indice, linha in enumerate(linhas):
        numero = linha.get("linha", indice + linha_inicial)
        sku = _texto(linha.get("sku"))
        descricao = _texto(linha.get("descricao"))
        codigo_barras = _texto(linha.get("codigo_barras"))
        if not (sku and descricao and codigo_barras):
            erros.append(f"Linha {numero}: {MSG_CAMPOS_FALTANDO}")
            continue
        validos.append({"sku": sku, "descricao": descricao, "codigo_barras": codigo_barras})
    return validos, erros


def _gravar_lote(lote):
    ''' Upsert por SKU: merge insere o que não existe e sobrescreve o resto. '''
    for item in lote:
        db.session.merge(Produto(**item))
    db.session.commit()


class ImportacaoProdutos:
    '''
    Uma importação: OCIOSO -> IMPORTANDO -> CONCLUIDO. Não pode ser pausada,
    cancelada nem executada de novo; cada lote é independente dos outros.
    '''

    def __init__(self, tamanho_lote=TAMANHO_LOTE, ao_progredir=None):
        if tamanho_lote <= 0:
            raise ValueError("tamanho_lote deve ser positivo")
        self.tamanho_lote = tamanho_lote
        self.ao_progredir = ao_progredir
        self.estado = EstadoImportacao.OCIOSO
        self.progresso = 0
        self.relatorio = None

    def _progredir(self, valor):
        self.progresso = valor
        if self.ao_progredir:
            self.ao_progredir(valor)

    def executar(self, linhas, linha_inicial=LINHA_INICIAL):
        if self.estado is not EstadoImportacao.OCIOSO:
            raise ErroValidacao("Esta importação já foi executada")
        self.estado = EstadoImportacao.IMPORTANDO

        linhas = list(linhas)
        validos, erros = validar_linhas(linhas, linha_inicial)
        relatorio = RelatorioImportacao(total=len(linhas), erros=erros)
        if not validos:
            relatorio.erros.append(MSG_NENHUM_VALIDO)

        logger.info(f"Importando {len(validos)} produtos válidos de {len(linhas)} linhas em lotes de {self.tamanho_lote}.")
        for numero_lote, inicio in enumerate(range(0, len(validos), self.tamanho_lote), start=1):
            lote = validos[inicio:inicio + self.tamanho_lote]
            try:
                _gravar_lote(lote)
                relatorio.sucesso += len(lote)
            except SQLAlchemyError as e:
                db.session.rollback()
                detalhe = getattr(e, "orig", None) or e
                logger.error(f"Erro no lote {numero_lote} da importação: {detalhe}", exc_info=True)
                relatorio.erros.append(f"Erro no lote {numero_lote}: {detalhe}")
            self._progredir(min((inicio + self.tamanho_lote) / len(validos) * 100, 100))

        if not validos:
            self._progredir(100)
        self.estado = EstadoImportacao.CONCLUIDO
        self.relatorio = relatorio
        logger.info(f"Importação concluída: {relatorio.sucesso} de {relatorio.total} linhas, {len(relatorio.erros)} erros.")
        return relatorio


def importar_produtos(linhas, tamanho_lote=TAMANHO_LOTE, linha_inicial=LINHA_INICIAL, ao_progredir=None):
    return ImportacaoProdutos(tamanho_lote, ao_progredir).executar(linhas, linha_inicial)
