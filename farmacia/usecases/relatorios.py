# farmacia/usecases/relatorios.py
"""
Relatórios de estoque e movimentação:
- estoque baixo (status CRITICO / ALERTA / OK)
- produtos a vencer (janela de dias, inclui vencidos)
- histórico de entradas
- totais por nota fiscal
- ordens de compra

Cada relatório retorna ``(colunas, linhas, mensagem)`` para exibição tabular.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import List, Optional, Tuple

from farmacia.config import DB_PATH, DEFAULTS
from farmacia.domain.models import Contexto
from farmacia.domain.policies import status_estoque
from farmacia.infra.db import connect, rows_as_dicts
from farmacia.infra.migrations import apply_migrations
from farmacia.infra.views import create_views
from farmacia.infra.repositories import EntradaRepo, OrdemCompraRepo, ParamsRepo, ProdutoRepo
from farmacia.infra.logger import log_system_event, log_database_operation

Relatorio = Tuple[List[str], List[list], Optional[str]]

_ORDEM_STATUS = {"CRITICO": 0, "ALERTA": 1, "OK": 2}


def _preparar(db_path: str) -> None:
    apply_migrations(db_path)
    create_views(db_path)


def _today_iso() -> str:
    return date.today().isoformat()


# ----------------------
# 1) Estoque baixo
# ----------------------

def relatorio_estoque_baixo(ctx: Contexto, db_path: str = DB_PATH, incluir_ok: bool = False) -> Relatorio:
    """
    Lista produtos ativos com o status de estoque.

    CRITICO quando estoque <= mínimo, ALERTA quando estoque <= 2 × mínimo.
    Com ``incluir_ok=False`` apenas CRITICO e ALERTA são listados.
    """
    log_system_event("relatorio_estoque_baixo_start", {"db_path": db_path})
    try:
        _preparar(db_path)
        produtos = ProdutoRepo(db_path).get_all(ctx)
        log_database_operation("produto", "SELECT_ALL", len(produtos))

        out = []
        for p in produtos:
            status = status_estoque(p.estoque, p.estoque_min)
            if status == "OK" and not incluir_ok:
                continue
            out.append([p.codigo or "", p.nome, p.laboratorio or DEFAULTS.grupo_sem_laboratorio,
                        p.estoque, p.estoque_min, status])
        out.sort(key=lambda r: (_ORDEM_STATUS[r[5]], r[3], r[1]))

        log_system_event("relatorio_estoque_baixo_ok", {"listados": len(out), "total": len(produtos)})
        columns = ["Código", "Produto", "Laboratório", "Estoque", "Mínimo", "Status"]
        msg = None if out else "Nenhum produto com estoque baixo."
        return columns, out, msg
    except Exception as e:
        log_system_event("relatorio_estoque_baixo_error", {"error": str(e)}, level="error")
        raise


# ----------------------
# 2) Produtos a vencer
# ----------------------

def relatorio_produtos_a_vencer(ctx: Contexto, dias: Optional[int] = None, db_path: str = DB_PATH,
                                hoje: Optional[str] = None) -> Relatorio:
    """
    Produtos com estoque cuja validade cai em até ``dias`` a partir de hoje.
    Produtos já vencidos também aparecem (dias restantes negativos).
    """
    _preparar(db_path)
    if dias is None:
        dias = int(ParamsRepo(db_path).get_float("dias_a_vencer", DEFAULTS.dias_a_vencer))
    base = date.fromisoformat(hoje or _today_iso())
    limite = (base + timedelta(days=int(dias))).isoformat()
    log_system_event("relatorio_produtos_a_vencer_start", {"dias": dias, "limite": limite})

    with connect(db_path) as c:
        rows = rows_as_dicts(c.execute(
            """
            SELECT codigo, nome, laboratorio, lote, data_validade, estoque
            FROM vw_estoque_produto
            WHERE empresa_id = ? AND sede_id = ? AND ativo = 1
              AND estoque > 0
              AND data_validade IS NOT NULL
              AND data_validade <= ?
            ORDER BY data_validade ASC, nome ASC
            """,
            (ctx.empresa_id, ctx.sede_id, limite),
        ))
    log_database_operation("vw_estoque_produto", "SELECT", len(rows))

    out = []
    for r in rows:
        restantes = (date.fromisoformat(r["data_validade"]) - base).days
        out.append([r["codigo"] or "", r["nome"], r["lote"] or "", r["data_validade"], restantes,
                    r["estoque"], "VENCIDO" if restantes < 0 else "A VENCER"])

    columns = ["Código", "Produto", "Lote", "Validade", "Dias", "Estoque", "Situação"]
    msg = None if out else f"Nenhum produto vence nos próximos {dias} dias."
    return columns, out, msg


# ----------------------
# 3) Entradas
# ----------------------

def relatorio_entradas(ctx: Contexto, nota_fiscal: Optional[str] = None, limite: Optional[int] = 100,
                       db_path: str = DB_PATH) -> Relatorio:
    _preparar(db_path)
    rows = EntradaRepo(db_path).listar(ctx, nota_fiscal=nota_fiscal, limite=limite)
    log_database_operation("entrada", "SELECT", len(rows), nota_fiscal=nota_fiscal)
    columns = ["Data", "Nota", "Fornecedor", "Produto", "Qtd (un)", "Custo un.", "Margem %",
               "Lote", "Validade", "Usuário"]
    out = [
        [r["data_entrada"], r["nota_fiscal"], r["fornecedor"], r["produto"], r["quantidade"],
         round(float(r["custo_unitario"]), 4), r["margem"], r["lote"] or "", r["data_validade"] or "",
         r["usuario"] or ""]
        for r in rows
    ]
    return columns, out, None if out else "Nenhuma entrada registrada."


def relatorio_notas(ctx: Contexto, db_path: str = DB_PATH) -> Relatorio:
    _preparar(db_path)
    rows = EntradaRepo(db_path).totais_por_nota(ctx)
    columns = ["Data", "Nota", "Fornecedor", "Itens", "Unidades", "Valor total", "Usuário"]
    out = [
        [r["data_entrada"], r["nota_fiscal"], r["fornecedor"], r["itens"], r["unidades"],
         r["valor_total"], r["usuario"] or ""]
        for r in rows
    ]
    return columns, out, None if out else "Nenhuma nota registrada."


# ----------------------
# 4) Ordens de compra
# ----------------------

def relatorio_ordens(ctx: Contexto, db_path: str = DB_PATH) -> Relatorio:
    _preparar(db_path)
    rows = OrdemCompraRepo(db_path).listar(ctx)
    columns = ["ID", "Data", "Fornecedor", "Estado", "Itens", "Valor estimado", "Usuário"]
    out = [
        [r["id"], r["data_pedido"], r["fornecedor"], r["estado"], r["itens"],
         round(float(r["valor_estimado"]), 2), r["usuario"] or ""]
        for r in rows
    ]
    return columns, out, None if out else "Nenhuma ordem de compra."
