"""
Carrinho de recebimento: acumula as linhas de uma nota fiscal antes da gravação.

Estados::

    VAZIO -> PREPARANDO (>= 1 item) -> ENVIANDO -> VAZIO   (gravado)
                                               \\-> FALHOU  (itens mantidos)

Em ``PREPARANDO`` e ``FALHOU`` os itens podem ser incluídos e removidos à
vontade. ``ENVIANDO`` recusa qualquer alteração e uma segunda confirmação.

Depois de uma gravação parcial o carrinho fica bloqueado até ``conciliar()``,
que retira os itens já gravados; só o restante pode ser reenviado.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional

from farmacia.domain.erros import CampoObrigatorioAusente, ErroEstado
from farmacia.domain.models import Contexto, ItemRecebimento, NivelEmbalagem, NotaEntrada, Produto
from farmacia.domain.precificacao import FormularioItem


class EstadoCarrinho(str, Enum):
    VAZIO = "vazio"
    PREPARANDO = "preparando"
    ENVIANDO = "enviando"
    FALHOU = "falhou"


class CarrinhoRecebimento:
    def __init__(self, margem_padrao: float = 30.0):
        self.margem_padrao = margem_padrao
        self.itens: List[ItemRecebimento] = []
        self.formulario: Optional[FormularioItem] = None
        self.estado = EstadoCarrinho.VAZIO
        self.ultimo_resultado: Any = None
        self.conciliacao_pendente = False

    def __len__(self) -> int:
        return len(self.itens)

    # --------- linha em edição ---------

    def selecionar_produto(self, produto: Produto) -> FormularioItem:
        """Abre o formulário de uma nova linha para ``produto``."""
        self._exige_editavel()
        self.formulario = FormularioItem(produto=produto, margem=self.margem_padrao)
        return self.formulario

    def preencher_validade_por_lote(self, consulta, ctx: Contexto) -> Optional[str]:
        """Preenche a validade a partir da entrada mais recente do mesmo (produto, lote).

        ``consulta`` precisa oferecer ``ultima_validade(produto_nome, lote, ctx)``.
        Retorna a data encontrada, ou None sem alterar o formulário.
        """
        f = self.formulario
        if f is None or not f.lote:
            return None
        validade = consulta.ultima_validade(f.produto.nome, f.lote, ctx)
        if validade:
            f.data_validade = validade
        return validade

    # --------- itens ---------

    def adicionar_item(self, formulario: Optional[FormularioItem] = None) -> ItemRecebimento:
        """Valida a linha e a inclui no carrinho.

        Em caso de erro de validação o carrinho fica como estava e o erro é
        propagado. Em caso de sucesso o formulário de trabalho é descartado.
        """
        self._exige_editavel()
        f = formulario or self.formulario
        if f is None:
            raise CampoObrigatorioAusente("produto")
        if not (f.lote or "").strip():
            raise CampoObrigatorioAusente("lote")
        if not (f.data_validade or "").strip():
            raise CampoObrigatorioAusente("data_validade")

        p = f.precificar()
        precos = f.precos_finais(p)
        item = ItemRecebimento(
            produto=f.produto,
            quantidade=int(f.quantidade),
            nivel=f.nivel,
            custo_total=float(f.custo_total),
            margem=float(f.margem),
            lote=f.lote.strip(),
            data_validade=f.data_validade.strip(),
            quantidade_canonica=p.quantidade_canonica,
            custo_unitario=p.custo_unitario,
            embalagens=f.embalagens(),
            preco_unidade=precos.pop(NivelEmbalagem.UNIDADE),
            precos=precos,
        )
        self.itens.append(item)
        if f is self.formulario:
            self.formulario = None
        self.estado = EstadoCarrinho.PREPARANDO
        return item

    def remover_item(self, indice: int) -> ItemRecebimento:
        self._exige_editavel()
        if not 0 <= indice < len(self.itens):
            raise IndexError(f"Item {indice} não existe no carrinho")
        item = self.itens.pop(indice)
        if not self.itens:
            self.estado = EstadoCarrinho.VAZIO
        return item

    def total(self) -> float:
        return sum(i.custo_total for i in self.itens)

    def total_unidades(self) -> int:
        return sum(i.quantidade_canonica for i in self.itens)

    # --------- confirmação ---------

    def confirmar(self, nota: NotaEntrada, transacao, ctx: Contexto):
        """Grava a nota através de ``transacao.executar(itens, nota, ctx)``.

        Retorna o resultado da transação. Em sucesso o carrinho volta a
        ``VAZIO``; em falha vai para ``FALHOU`` mantendo os itens. Se a
        falha deixou escritas no banco, nova confirmação exige ``conciliar()``.
        """
        if self.estado == EstadoCarrinho.ENVIANDO:
            raise ErroEstado("Recebimento já está sendo gravado")
        if self.conciliacao_pendente:
            raise ErroEstado("Gravação parcial pendente: conciliar antes de tentar novamente")
        if not self.itens:
            raise CampoObrigatorioAusente("itens")
        if nota is None or nota.fornecedor is None:
            raise CampoObrigatorioAusente("fornecedor")
        if not (nota.numero or "").strip():
            raise CampoObrigatorioAusente("nota_fiscal")

        self.estado = EstadoCarrinho.ENVIANDO
        try:
            resultado = transacao.executar(list(self.itens), nota, ctx)
        except Exception:
            self.estado = EstadoCarrinho.FALHOU
            raise
        self.ultimo_resultado = resultado
        if resultado.sucesso:
            self.itens = []
            self.formulario = None
            self.estado = EstadoCarrinho.VAZIO
        else:
            self.estado = EstadoCarrinho.FALHOU
            self.conciliacao_pendente = bool(getattr(resultado, "parcial", False))
        return resultado

    def conciliar(self) -> List[ItemRecebimento]:
        """Retira do carrinho os itens que ficaram gravados na última tentativa.

        Usa ``ultimo_resultado.indices_gravados()``. Retorna os itens retirados,
        que precisam de conferência manual; os demais podem ser reenviados.
        """
        if not self.conciliacao_pendente:
            return []
        gravados = set(self.ultimo_resultado.indices_gravados())
        retirados = [it for i, it in enumerate(self.itens) if i in gravados]
        self.itens = [it for i, it in enumerate(self.itens) if i not in gravados]
        self.conciliacao_pendente = False
        self.estado = EstadoCarrinho.FALHOU if self.itens else EstadoCarrinho.VAZIO
        return retirados

    def _exige_editavel(self) -> None:
        if self.estado == EstadoCarrinho.ENVIANDO:
            raise ErroEstado("Carrinho bloqueado durante a gravação")
        if self.conciliacao_pendente:
            raise ErroEstado("Conciliar a gravação parcial antes de alterar o carrinho")
