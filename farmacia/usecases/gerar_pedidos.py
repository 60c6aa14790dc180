# farmacia/usecases/gerar_pedidos.py
"""
Caso de uso: gerar ordens de compra em rascunho a partir da sugestão de reposição.

Regras:
- Uma ordem por grupo (laboratório) com fornecedor atribuído e ao menos um
  produto selecionado com quantidade > 0.
- Cada linha guarda uma cópia do nome e do custo unitário atual do produto.
- Por ordem é tudo ou nada: se as linhas falham depois do cabeçalho gravado,
  o cabeçalho é removido. Se a remoção também falhar, o grupo fica como
  `FalhaCommitParcial`.
- Um grupo com erro não impede os demais.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Mapping, Optional

from farmacia.config import DB_PATH, DEFAULTS
from farmacia.domain.erros import ErroPersistencia, FalhaCommitParcial, FalhaPersistencia
from farmacia.domain.models import Contexto, ItemOrdemCompra, OrdemCompra
from farmacia.infra.migrations import apply_migrations
from farmacia.infra.views import create_views
from farmacia.infra.repositories import OrdemCompraRepo
from farmacia.infra.logger import log_pedido, log_transaction, log_system_event
from farmacia.usecases.verificar_estoque import SugestaoReposicao


@dataclass
class ResultadoPedidos:
    ordens: List[OrdemCompra] = field(default_factory=list)
    falhas: Dict[str, ErroPersistencia] = field(default_factory=dict)
    ignorados: List[str] = field(default_factory=list)

    @property
    def quantidade_gerada(self) -> int:
        return len(self.ordens)

    @property
    def sucesso(self) -> bool:
        return not self.falhas


def _montar_ordem(fornecedor: str, itens: List[ItemOrdemCompra], ctx: Contexto, data_pedido: str) -> OrdemCompra:
    return OrdemCompra(
        fornecedor=fornecedor,
        data_pedido=data_pedido,
        estado=DEFAULTS.estado_ordem_inicial,
        usuario=ctx.usuario,
        empresa_id=ctx.empresa_id,
        sede_id=ctx.sede_id,
        itens=itens,
    )


def _gravar_ordem(repo: OrdemCompraRepo, grupo: str, ordem: OrdemCompra) -> None:
    try:
        ordem_id = repo.insert_ordem(ordem)
    except Exception as e:
        raise FalhaPersistencia(f"Ordem do grupo {grupo!r} não foi gravada: {e}", causa=e,
                                detalhes=[{"grupo": grupo, "passo": "cabecalho", "erro": str(e)}]) from e
    try:
        repo.insert_itens(ordem_id, ordem.itens)
    except Exception as e:
        detalhes = [{"grupo": grupo, "ordem_id": ordem_id, "passo": "itens", "erro": str(e)}]
        try:
            repo.delete_ordem(ordem_id)
        except Exception as e2:
            detalhes.append({"grupo": grupo, "ordem_id": ordem_id, "passo": "compensacao", "erro": str(e2)})
            log_pedido("compensate_failed", grupo, ordem.fornecedor, len(ordem.itens), ordem_id=ordem_id)
            raise FalhaCommitParcial(
                f"Ordem {ordem_id} do grupo {grupo!r} ficou sem itens e não pôde ser removida: {e2}",
                causa=e, detalhes=detalhes,
            ) from e
        log_pedido("compensate", grupo, ordem.fornecedor, len(ordem.itens), ordem_id=ordem_id)
        raise FalhaPersistencia(f"Itens da ordem do grupo {grupo!r} não foram gravados: {e}",
                                causa=e, detalhes=detalhes) from e
    ordem.id = ordem_id
    for item in ordem.itens:
        item.ordem_id = ordem_id


def gerar_pedidos(
    sugestao: SugestaoReposicao,
    fornecedor_por_grupo: Mapping[str, Optional[int]],
    ctx: Contexto,
    repo: OrdemCompraRepo,
    data_pedido: Optional[str] = None,
) -> ResultadoPedidos:
    """Cria uma ordem de compra em rascunho por grupo com fornecedor atribuído."""
    data_pedido = data_pedido or date.today().isoformat()
    fornecedores = {f.id: f for f in sugestao.fornecedores}
    resultado = ResultadoPedidos()

    for grupo, candidatos in sugestao.grupos.items():
        fornecedor = fornecedores.get(fornecedor_por_grupo.get(grupo))
        if fornecedor is None:
            resultado.ignorados.append(grupo)
            log_pedido("skip", grupo, motivo="sem_fornecedor")
            continue

        itens = [
            ItemOrdemCompra(
                produto_id=c.produto.id,
                produto_nome=c.produto.nome,
                quantidade=int(c.quantidade),
                custo_unitario_estimado=float(c.produto.custo_unitario or 0.0),
            )
            for c in candidatos
            if c.selecionado and int(c.quantidade) > 0
        ]
        if not itens:
            resultado.ignorados.append(grupo)
            log_pedido("skip", grupo, fornecedor.nome, motivo="sem_itens")
            continue

        ordem = _montar_ordem(fornecedor.nome, itens, ctx, data_pedido)
        try:
            _gravar_ordem(repo, grupo, ordem)
        except ErroPersistencia as e:
            resultado.falhas[grupo] = e
            log_pedido("fail", grupo, fornecedor.nome, len(itens), error=str(e))
            log_system_event("gerar_pedido_error", {"grupo": grupo, "error": str(e)}, level="error")
            continue
        resultado.ordens.append(ordem)
        log_pedido("create", grupo, fornecedor.nome, len(itens), ordem_id=ordem.id)

    log_transaction(
        "gerar_pedidos",
        {"grupos": len(sugestao.grupos), "usuario": ctx.usuario},
        result={"ordens": resultado.quantidade_gerada, "ignorados": resultado.ignorados},
        error="; ".join(f"{g}: {e}" for g, e in resultado.falhas.items()) or None,
    )
    return resultado


def run_gerar_pedidos(
    sugestao: SugestaoReposicao,
    fornecedor_por_grupo: Mapping[str, Optional[int]],
    ctx: Contexto,
    db_path: str = DB_PATH,
    data_pedido: Optional[str] = None,
) -> ResultadoPedidos:
    apply_migrations(db_path)
    create_views(db_path)
    return gerar_pedidos(sugestao, fornecedor_por_grupo, ctx, OrdemCompraRepo(db_path), data_pedido)
