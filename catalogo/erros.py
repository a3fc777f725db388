# -*- coding: utf-8 -*-
'''
Erros da aplicação. Toda falha que chega ao usuário passa por uma destas
classes, que já carregam o status HTTP e a mensagem exibida.
'''


class ErroCatalogo(Exception):
    status_code = 500
    mensagem_padrao = "Erro interno do servidor"

    def __init__(self, mensagem=None):
        self.mensagem = mensagem or self.mensagem_padrao
        super().__init__(self.mensagem)

    def to_dict(self):
        return {"error": self.mensagem}


class ErroValidacao(ErroCatalogo):
    status_code = 400
    mensagem_padrao = "Todos os campos são obrigatórios"


# --- Autenticação ---

class ErroAutenticacao(ErroCatalogo):
    status_code = 401
    mensagem_padrao = "Not authenticated"


class CredenciaisInvalidas(ErroAutenticacao):
    mensagem_padrao = "Invalid credentials"


class NaoAutenticado(ErroAutenticacao):
    mensagem_padrao = "Not authenticated"


class TokenInvalido(ErroAutenticacao):
    mensagem_padrao = "Invalid token"


class SessaoExpirada(ErroAutenticacao):
    mensagem_padrao = "Token expired"


# --- Produtos ---

class NaoEncontrado(ErroCatalogo):
    status_code = 404
    mensagem_padrao = "Produto não encontrado"


class ErroConflito(ErroCatalogo):
    status_code = 409
    mensagem_padrao = "SKU já existe no banco de dados"


class LojaIndisponivel(ErroCatalogo):
    ''' Falha de rede ou do banco. O detalhe fica só no log. '''
    status_code = 500
    mensagem_padrao = "Internal server error"


# Mapeamento usado pelo cliente HTTP para reconstruir o erro a partir da resposta.
ERROS_POR_STATUS = {
    400: ErroValidacao,
    401: NaoAutenticado,
    404: NaoEncontrado,
    409: ErroConflito,
}
