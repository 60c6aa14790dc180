"""
Conversion and pricing for goods receiving.

Given a purchased batch (quantity at some packaging level and the total paid)
and a margin target, these functions return the quantity in canonical stock
units, the unit cost and a suggested sell price for every packaging level
defined for the product.

``calcular_precos`` is pure: it depends only on its inputs, so previews can
be recomputed as often as the form changes. ``FormularioItem`` keeps the
user's manual edits apart from the computed suggestions, so an edited price
is not overwritten by the next recomputation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Union

from farmacia.domain.erros import (
    CampoObrigatorioAusente,
    NivelEmbalagemIndefinido,
    QuantidadeInvalida,
    ValorInvalido,
)
from farmacia.domain.models import NIVEIS_EMBALAGEM, NivelEmbalagem, Produto

Numero = Union[int, float]


@dataclass(frozen=True)
class Precificacao:
    quantidade_canonica: int
    custo_unitario: float
    precos_sugeridos: Dict[NivelEmbalagem, float]

    @property
    def preco_unidade(self) -> float:
        return self.precos_sugeridos[NivelEmbalagem.UNIDADE]


def embalagens_definidas(embalagens: Optional[Mapping[NivelEmbalagem, Optional[Numero]]]) -> Dict[NivelEmbalagem, int]:
    """Drop levels whose ratio is missing or not positive."""
    out: Dict[NivelEmbalagem, int] = {}
    for nivel, unidades in (embalagens or {}).items():
        if nivel == NivelEmbalagem.UNIDADE or unidades is None:
            continue
        u = int(unidades)
        if u > 0:
            out[NivelEmbalagem(nivel)] = u
    return out


def quantidade_canonica(quantidade: Numero, nivel: NivelEmbalagem,
                        embalagens: Mapping[NivelEmbalagem, Optional[Numero]]) -> int:
    """Return ``quantidade`` expressed in canonical units.

    Raises
    ------
    NivelEmbalagemIndefinido
        ``nivel`` is not defined in ``embalagens``.
    QuantidadeInvalida
        The resulting quantity is not positive.
    """
    if quantidade is None:
        raise CampoObrigatorioAusente("quantidade")
    nivel = NivelEmbalagem(nivel)
    if nivel == NivelEmbalagem.UNIDADE:
        fator = 1
    else:
        fator = embalagens_definidas(embalagens).get(nivel)
        if fator is None:
            raise NivelEmbalagemIndefinido(nivel)
    if int(quantidade) != quantidade:
        raise QuantidadeInvalida(quantidade, "A quantidade comprada deve ser inteira")
    total = int(quantidade) * fator
    if total <= 0:
        raise QuantidadeInvalida(total)
    return total


def preco_sugerido(custo_unitario: Numero, margem: Numero) -> float:
    """Unit cost marked up by ``margem`` percent."""
    return float(custo_unitario) * (1.0 + float(margem) / 100.0)


def calcular_precos(
    quantidade: Numero,
    nivel: NivelEmbalagem,
    embalagens: Optional[Mapping[NivelEmbalagem, Optional[Numero]]],
    custo_total: Numero,
    margem: Numero,
) -> Precificacao:
    """Compute canonical quantity, unit cost and suggested sell prices.

    Parameters
    ----------
    quantidade: int
        Purchased quantity at ``nivel`` (positive integer).
    nivel: NivelEmbalagem
        Packaging level of the purchase.
    embalagens: mapping
        Units per package for each level of the product. Missing levels do
        not apply to the product.
    custo_total: float
        Total paid for ``quantidade`` (non-negative).
    margem: float
        Target markup in percent. Zero and negative values are accepted.

    Returns
    -------
    Precificacao
        The unit level is always priced; other levels only when defined.
    """
    if custo_total is None:
        raise CampoObrigatorioAusente("custo_total")
    if margem is None:
        raise CampoObrigatorioAusente("margem")
    if float(custo_total) < 0:
        raise ValorInvalido("custo_total", custo_total)

    tabela = embalagens_definidas(embalagens)
    total_unidades = quantidade_canonica(quantidade, nivel, tabela)
    custo_unitario = float(custo_total) / total_unidades
    pv_unidade = preco_sugerido(custo_unitario, margem)

    precos: Dict[NivelEmbalagem, float] = {NivelEmbalagem.UNIDADE: pv_unidade}
    for n in NIVEIS_EMBALAGEM:
        if n in tabela:
            precos[n] = pv_unidade * tabela[n]
    return Precificacao(total_unidades, custo_unitario, precos)


@dataclass
class FormularioItem:
    """Working state for one invoice line before it is staged in the cart.

    ``embalagens_ajustadas`` and ``precos_ajustados`` hold the user's manual
    edits. Anything not edited comes from the product or from the engine.
    """
    produto: Produto
    margem: float
    quantidade: int = 1
    nivel: NivelEmbalagem = NivelEmbalagem.UNIDADE
    custo_total: float = 0.0
    lote: Optional[str] = None
    data_validade: Optional[str] = None
    embalagens_ajustadas: Dict[NivelEmbalagem, int] = field(default_factory=dict)
    precos_ajustados: Dict[NivelEmbalagem, float] = field(default_factory=dict)

    def embalagens(self) -> Dict[NivelEmbalagem, int]:
        tabela = dict(self.produto.embalagens)
        tabela.update(self.embalagens_ajustadas)
        return embalagens_definidas(tabela)

    def niveis_disponiveis(self):
        tabela = self.embalagens()
        return [NivelEmbalagem.UNIDADE] + [n for n in NIVEIS_EMBALAGEM if n in tabela]

    def ajustar_embalagem(self, nivel: NivelEmbalagem, unidades: Optional[int]) -> None:
        nivel = NivelEmbalagem(nivel)
        if nivel == NivelEmbalagem.UNIDADE:
            raise ValorInvalido("nivel", nivel.value)
        self.embalagens_ajustadas[nivel] = unidades

    def definir_preco(self, nivel: NivelEmbalagem, valor: float) -> None:
        if valor is None or float(valor) < 0:
            raise ValorInvalido(f"preco_{NivelEmbalagem(nivel).value.lower()}", valor)
        self.precos_ajustados[NivelEmbalagem(nivel)] = float(valor)

    def limpar_preco(self, nivel: NivelEmbalagem) -> None:
        self.precos_ajustados.pop(NivelEmbalagem(nivel), None)

    def precificar(self) -> Precificacao:
        try:
            return calcular_precos(self.quantidade, self.nivel, self.embalagens(),
                                   self.custo_total, self.margem)
        except NivelEmbalagemIndefinido as e:
            raise NivelEmbalagemIndefinido(e.nivel, self.produto.nome) from None

    def precos_finais(self, precificacao: Optional[Precificacao] = None) -> Dict[NivelEmbalagem, float]:
        """Suggested prices with the manual edits applied on top.

        Edits for levels the product does not have are ignored.
        """
        p = precificacao or self.precificar()
        out = dict(p.precos_sugeridos)
        for nivel, valor in self.precos_ajustados.items():
            if nivel in out:
                out[nivel] = valor
        return out
