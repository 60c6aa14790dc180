"""
Políticas de classificação de estoque e de quantidade sugerida de compra.

Este módulo contém as regras de negócio usadas pelo assistente de pedidos
(reposição crítica e proativa) e pela listagem de estoque baixo. Todas as
funções são puras e operam sobre números simples.
"""

from __future__ import annotations

from typing import Optional


def _int_or_zero(x: Optional[float]) -> int:
    try:
        return int(x) if x is not None else 0
    except (TypeError, ValueError):
        return 0


def eh_critico(estoque: Optional[int], minimo: Optional[int]) -> bool:
    """Produto em falta crítica.

    Regras:
        - ``minimo <= 0`` (ou ausente) significa "sem mínimo configurado":
          o produto nunca é classificado como crítico.
        - ``estoque <= minimo`` → crítico.
    """
    m = _int_or_zero(minimo)
    if m <= 0:
        return False
    return _int_or_zero(estoque) <= m


def eh_proativo(estoque: Optional[int], teto: int) -> bool:
    """Estoque positivo mas abaixo do teto de estoque baixo (independe do mínimo)."""
    e = _int_or_zero(estoque)
    return 0 < e < int(teto)


def qtd_sugerida_critica(estoque: Optional[int], minimo: Optional[int]) -> int:
    """Quantidade sugerida para um item crítico.

    ``max(minimo - estoque, minimo)``; se não for positiva, o próprio mínimo
    como reposição mínima.
    """
    e = _int_or_zero(estoque)
    m = _int_or_zero(minimo)
    q = max(m - e, m)
    return q if q > 0 else m


def qtd_sugerida_proativa(estoque: Optional[int], teto: int, piso: int) -> int:
    """Quantidade sugerida para um item proativo: completa até o teto, com piso."""
    q = max(int(teto) - _int_or_zero(estoque), 0)
    return q if q > 0 else int(piso)


def status_estoque(estoque: Optional[int], minimo: Optional[int]) -> str:
    """Classifica o status de estoque para listagens.

    Regras:
        - ``estoque <= minimo`` → ``'CRITICO'``
        - ``estoque <= 2 * minimo`` → ``'ALERTA'``
        - demais casos → ``'OK'``

    Sem mínimo configurado o status é ``'OK'`` enquanto houver estoque e
    ``'CRITICO'`` quando zerado.
    """
    e = _int_or_zero(estoque)
    m = _int_or_zero(minimo)
    if m <= 0:
        return "CRITICO" if e <= 0 else "OK"
    if e <= m:
        return "CRITICO"
    if e <= 2 * m:
        return "ALERTA"
    return "OK"
