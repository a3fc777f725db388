# -*- coding: utf-8 -*-
'''
Cliente HTTP do catálogo, com o comportamento que a interface tinha no navegador:
sessão carregada no início, busca com debounce, rolagem infinita, alterações
aplicadas na lista local e logout automático por inatividade.
'''
import os
import threading
import logging

import requests

from catalogo.erros import (
    CredenciaisInvalidas,
    ERROS_POR_STATUS,
    ErroAutenticacao,
    LojaIndisponivel,
)

logger = logging.getLogger(__name__)

TEMPO_INATIVIDADE = 5 * 60  # segundos
ATRASO_BUSCA_TABELA = 0.8
ATRASO_PESQUISA_RAPIDA = 0.3
EVENTOS_ATIVIDADE = ("mousedown", "mousemove", "keypress", "scroll", "touchstart", "click")


class Debouncer:
    ''' Executa `funcao` só depois que as chamadas param por `atraso` segundos. '''

    def __init__(self, atraso, funcao, timer_factory=threading.Timer):
        self.atraso = atraso
        self.funcao = funcao
        self._timer_factory = timer_factory
        self._timer = None
        self._lock = threading.Lock()

    def chamar(self, *args, **kwargs):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = self._timer_factory(self.atraso, self.funcao, args, kwargs)
            self._timer.daemon = True
            self._timer.start()

    def cancelar(self):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


class MonitorInatividade:
    '''
    Chama `ao_expirar` quando nenhum evento de atividade chega por `tempo`
    segundos. Só afeta o cliente; o token continua válido no servidor.
    '''

    def __init__(self, ao_expirar, tempo=TEMPO_INATIVIDADE, timer_factory=threading.Timer):
        self.ao_expirar = ao_expirar
        self.tempo = tempo
        self._timer_factory = timer_factory
        self._timer = None
        self._lock = threading.Lock()
        self.ativo = False

    def _reiniciar(self):
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._timer_factory(self.tempo, self._expirar)
        self._timer.daemon = True
        self._timer.start()

    def iniciar(self):
        with self._lock:
            self.ativo = True
            self._reiniciar()

    def registrar_evento(self, evento):
        with self._lock:
            if not self.ativo or evento not in EVENTOS_ATIVIDADE:
                return False
            self._reiniciar()
            return True

    def parar(self):
        with self._lock:
            self.ativo = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _expirar(self):
        with self._lock:
            if not self.ativo:
                return
            self.ativo = False
            self._timer = None
        logger.info(f"Usuário inativo por {self.tempo} segundos, encerrando sessão...")
        self.ao_expirar()


class ContextoSessao:
    ''' Usuário atual do cliente. Criado vazio, preenchido no login ou na verificação inicial. '''

    def __init__(self):
        self.usuario = None

    @property
    def autenticado(self):
        return self.usuario is not None

    def iniciar(self, usuario):
        self.usuario = usuario

    def encerrar(self):
        self.usuario = None


class VisaoProdutos:
    '''
    Lista de produtos exibida na tabela de gerenciamento.

    Cada nova consulta recebe uma geração; respostas de gerações antigas são
    descartadas. Página 0 substitui a lista, página N acrescenta. As alterações
    locais (edição, exclusão) só ajustam o que está na tela; a próxima busca
    sempre vem do servidor.
    '''

    def __init__(self):
        self._lock = threading.Lock()
        self.geracao = 0
        self.termo = ""
        self.itens = []
        self.total = 0
        self.tem_mais = False
        self.pagina = -1
        self.carregando = False

    def nova_consulta(self, termo):
        with self._lock:
            self.geracao += 1
            self.termo = termo
            self.carregando = True
            return self.geracao

    def reservar_proxima_pagina(self):
        ''' Devolve (geracao, pagina) para carregar mais, ou None se não há o que carregar. '''
        with self._lock:
            if self.carregando or not self.tem_mais:
                return None
            self.carregando = True
            return self.geracao, self.pagina + 1

    def aplicar_pagina(self, geracao, resultado):
        with self._lock:
            if geracao != self.geracao:
                logger.debug(f"Resposta descartada: geração {geracao}, atual {self.geracao}.")
                return False
            pagina = resultado["page"]
            if pagina == 0:
                self.itens = list(resultado["items"])
            elif pagina == self.pagina + 1:
                self.itens.extend(resultado["items"])
            else:
                logger.debug(f"Página {pagina} fora de ordem descartada (atual {self.pagina}).")
                return False
            self.pagina = pagina
            self.total = resultado["totalCount"]
            self.tem_mais = resultado["hasMore"]
            self.carregando = False
            return True

    def falhou(self, geracao):
        with self._lock:
            if geracao == self.geracao:
                self.carregando = False

    def aplicar_edicao(self, produto):
        with self._lock:
            self.itens = [produto if p["sku"] == produto["sku"] else p for p in self.itens]

    def aplicar_exclusao(self, sku):
        with self._lock:
            self.itens = [p for p in self.itens if p["sku"] != sku]
            self.total = max(self.total - 1, 0)


class ClienteCatalogo:
    def __init__(self, url_base, sessao_http=None, timeout=15,
                 tempo_inatividade=TEMPO_INATIVIDADE, timer_factory=threading.Timer):
        self.url_base = url_base.rstrip("/")
        self.http = sessao_http or requests.Session()
        self.timeout = timeout
        self.contexto = ContextoSessao()
        self.visao = VisaoProdutos()
        self.resultados_rapidos = []
        self._geracao_rapida = 0
        self.monitor = MonitorInatividade(self.sair, tempo_inatividade, timer_factory)
        self._busca_tabela = Debouncer(ATRASO_BUSCA_TABELA, self._buscar_em_segundo_plano, timer_factory)
        self._pesquisa = Debouncer(ATRASO_PESQUISA_RAPIDA, self._pesquisar_em_segundo_plano, timer_factory)

    def _requisitar(self, metodo, caminho, **kwargs):
        url = f"{self.url_base}{caminho}"
        try:
            resposta = self.http.request(metodo, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            logger.error(f"Erro de rede em {metodo} {caminho}: {e}")
            raise LojaIndisponivel() from e

        if resposta.status_code >= 400:
            try:
                mensagem = resposta.json().get("error")
            except ValueError:
                mensagem = None
            classe = ERROS_POR_STATUS.get(resposta.status_code, LojaIndisponivel)
            erro = classe(mensagem)
            if isinstance(erro, ErroAutenticacao):
                self.contexto.encerrar()
            raise erro
        return resposta

    # --- Sessão ---

    def entrar(self, username, password):
        try:
            resposta = self._requisitar("POST", "/api/auth/login", json={"username": username, "password": password})
        except ErroAutenticacao as e:
            raise CredenciaisInvalidas(e.mensagem) from e
        usuario = resposta.json()["user"]
        self.contexto.iniciar(usuario)
        self.monitor.iniciar()
        return usuario

    def carregar_sessao(self):
        ''' Verificação feita ao abrir o cliente: recupera o usuário se o cookie ainda vale. '''
        try:
            usuario = self._requisitar("GET", "/api/auth/me").json()["user"]
        except ErroAutenticacao:
            return None
        self.contexto.iniciar(usuario)
        self.monitor.iniciar()
        return usuario

    def sair(self):
        self.monitor.parar()
        try:
            self._requisitar("POST", "/api/auth/logout")
        except LojaIndisponivel:
            logger.warning("Falha ao chamar logout no servidor; sessão local encerrada mesmo assim.")
        finally:
            self.contexto.encerrar()

    def sair_sem_aguardar(self):
        ''' Logout de fechamento de página: dispara a requisição e não espera a resposta. '''
        self.monitor.parar()
        self.contexto.encerrar()

        def enviar():
            try:
                self.http.request("POST", f"{self.url_base}/api/auth/logout", data="{}", timeout=self.timeout)
            except requests.exceptions.RequestException as e:
                logger.warning(f"Logout em segundo plano falhou: {e}")

        envio = threading.Thread(target=enviar, daemon=True)
        envio.start()
        return envio

    def registrar_evento(self, evento):
        return self.monitor.registrar_evento(evento)

    # --- Busca ---

    def buscar(self, termo=""):
        ''' Nova consulta: página 0, substitui a lista. '''
        geracao = self.visao.nova_consulta(termo)
        self._carregar(geracao, termo, 0)
        return list(self.visao.itens)

    def carregar_mais(self):
        reserva = self.visao.reservar_proxima_pagina()
        if reserva is None:
            return False
        geracao, pagina = reserva
        return self._carregar(geracao, self.visao.termo, pagina)

    def _carregar(self, geracao, termo, pagina):
        try:
            resultado = self._requisitar("GET", "/api/produtos", params={"q": termo, "page": pagina}).json()
        except Exception:
            self.visao.falhou(geracao)
            raise
        return self.visao.aplicar_pagina(geracao, resultado)

    def digitar_busca(self, termo):
        self._busca_tabela.chamar(termo)

    def _buscar_em_segundo_plano(self, termo):
        try:
            self.buscar(termo)
        except ErroAutenticacao:
            logger.warning("Sessão inválida durante a busca.")
        except LojaIndisponivel:
            logger.error(f"Erro ao buscar produtos (termo '{termo}').")

    def pesquisa_rapida(self, termo):
        self._geracao_rapida += 1
        geracao = self._geracao_rapida
        if not termo.strip():
            self.resultados_rapidos = []
            return []
        itens = self._requisitar("GET", "/api/produtos/pesquisa", params={"q": termo}).json()["items"]
        if geracao == self._geracao_rapida:
            self.resultados_rapidos = itens
        return itens

    def digitar_pesquisa(self, termo):
        self._pesquisa.chamar(termo)

    def _pesquisar_em_segundo_plano(self, termo):
        try:
            self.pesquisa_rapida(termo)
        except ErroAutenticacao:
            logger.warning("Sessão inválida durante a pesquisa.")
        except LojaIndisponivel:
            logger.error(f"Erro ao pesquisar produtos (termo '{termo}').")

    # --- Alterações ---

    def adicionar(self, sku, descricao, codigo_barras):
        dados = {"sku": sku, "descricao": descricao, "codigo_barras": codigo_barras}
        return self._requisitar("POST", "/api/produtos", json=dados).json()

    def editar(self, sku, descricao, codigo_barras):
        dados = {"descricao": descricao, "codigo_barras": codigo_barras}
        produto = self._requisitar("PUT", f"/api/produtos/{requests.utils.quote(sku, safe='')}", json=dados).json()
        self.visao.aplicar_edicao(produto)
        return produto

    def excluir(self, sku):
        resposta = self._requisitar("DELETE", f"/api/produtos/{requests.utils.quote(sku, safe='')}").json()
        self.visao.aplicar_exclusao(sku)
        return resposta["totalCount"]

    def importar(self, caminho):
        with open(caminho, "rb") as arquivo:
            arquivos = {"arquivo": (os.path.basename(caminho), arquivo)}
            return self._requisitar("POST", "/api/produtos/importar", files=arquivos).json()

    def baixar_modelo(self, destino):
        conteudo = self._requisitar("GET", "/api/produtos/template").content
        with open(destino, "wb") as arquivo:
            arquivo.write(conteudo)
        return destino
