"""
Erros do domínio de recebimento e reposição.

Dois grupos:
- ``ErroValidacao``: detectados antes de qualquer escrita; o formulário ou
  carrinho continua editável.
- ``ErroPersistencia``: falhas de repositório. Carregam o detalhe do que
  foi e do que não foi gravado, para nova tentativa ou conciliação manual.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class ErroFarmacia(Exception):
    """Base de todos os erros do pacote."""


# -------------------------
# Validação
# -------------------------

class ErroValidacao(ErroFarmacia):
    pass


class QuantidadeInvalida(ErroValidacao):
    def __init__(self, quantidade: Any, mensagem: Optional[str] = None):
        self.quantidade = quantidade
        super().__init__(mensagem or f"Quantidade canônica inválida: {quantidade!r} (deve ser > 0)")


class NivelEmbalagemIndefinido(ErroValidacao):
    def __init__(self, nivel: Any, produto: Optional[str] = None):
        self.nivel = nivel
        self.produto = produto
        alvo = f" para o produto {produto!r}" if produto else ""
        super().__init__(f"Nível de embalagem {getattr(nivel, 'value', nivel)!r} não definido{alvo}")


class CampoObrigatorioAusente(ErroValidacao):
    def __init__(self, campo: str):
        self.campo = campo
        super().__init__(f"Campo obrigatório ausente: {campo}")


class ValorInvalido(ErroValidacao):
    def __init__(self, campo: str, valor: Any):
        self.campo = campo
        self.valor = valor
        super().__init__(f"Valor inválido para {campo}: {valor!r}")


# -------------------------
# Estado
# -------------------------

class ErroEstado(ErroFarmacia):
    """Operação incompatível com o estado atual do carrinho."""


# -------------------------
# Persistência
# -------------------------

class ErroPersistencia(ErroFarmacia):
    def __init__(self, mensagem: str, causa: Optional[BaseException] = None,
                 detalhes: Optional[List[Dict[str, Any]]] = None):
        self.causa = causa
        self.detalhes = detalhes or []
        super().__init__(mensagem)


class FalhaPersistencia(ErroPersistencia):
    """Uma chamada de repositório falhou e nada ficou gravado."""


class FalhaCommitParcial(ErroPersistencia):
    """Parte das escritas de uma operação múltipla ficou gravada."""
