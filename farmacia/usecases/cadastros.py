# farmacia/usecases/cadastros.py
"""
Cadastro de produtos e fornecedores.

- `importar_produtos`: carga (upsert por código) de um XLSX de catálogo.
- `cadastrar_produto` / `cadastrar_fornecedor`: inclusão avulsa.
- `buscar_produtos`: busca por nome ou código, usada na tela de recebimento.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from farmacia.config import DB_PATH
from farmacia.adapters.parsers import parse_data, parse_decimal, parse_inteiro
from farmacia.adapters.planilhas import load_produtos_from_xlsx
from farmacia.domain.erros import CampoObrigatorioAusente, ErroValidacao, ValorInvalido
from farmacia.domain.models import Contexto, Fornecedor, NivelEmbalagem, Produto
from farmacia.infra.migrations import apply_migrations
from farmacia.infra.views import create_views
from farmacia.infra.repositories import FornecedorRepo, ProdutoRepo
from farmacia.infra.logger import (
    log_transaction, log_system_event, log_file_operation, log_database_operation,
)

_EMBALAGENS_XLSX = {
    NivelEmbalagem.BLISTER: ("blister_u", "preco_blister"),
    NivelEmbalagem.CAIXA: ("caixa_u", "preco_caixa"),
    NivelEmbalagem.PACOTE: ("pacote_u", "preco_pacote"),
}


def _produto_de_linha(row: Dict[str, Any]) -> Produto:
    nome = (row.get("produto") or "").strip()
    if not nome:
        raise CampoObrigatorioAusente("produto")
    estoque = parse_inteiro(row.get("estoque")) or 0
    estoque_min = parse_inteiro(row.get("estoque_min")) or 0
    if estoque < 0:
        raise ValorInvalido("estoque", row.get("estoque"))
    if estoque_min < 0:
        raise ValorInvalido("estoque_min", row.get("estoque_min"))

    embalagens: Dict[NivelEmbalagem, int] = {}
    precos: Dict[NivelEmbalagem, float] = {}
    for nivel, (col_u, col_pv) in _EMBALAGENS_XLSX.items():
        unidades = parse_inteiro(row.get(col_u))
        if unidades and unidades > 0:
            embalagens[nivel] = unidades
            preco = parse_decimal(row.get(col_pv))
            if preco is not None:
                precos[nivel] = preco

    return Produto(
        id=None,
        nome=nome,
        codigo=row.get("codigo"),
        laboratorio=row.get("laboratorio"),
        estoque=estoque,
        estoque_min=estoque_min,
        custo_unitario=parse_decimal(row.get("custo_unitario")),
        preco_unidade=parse_decimal(row.get("preco_unidade")),
        embalagens=embalagens,
        precos=precos,
        lote=row.get("lote"),
        data_validade=parse_data(row.get("data_validade")),
    )


def cadastrar_produto(produto: Produto, ctx: Contexto, db_path: str = DB_PATH) -> int:
    apply_migrations(db_path)
    if not (produto.nome or "").strip():
        raise CampoObrigatorioAusente("nome")
    produto_id = ProdutoRepo(db_path).inserir(produto, ctx)
    log_database_operation("produto", "INSERT", 1, produto_id=produto_id, nome=produto.nome)
    return produto_id


def cadastrar_fornecedor(fornecedor: Fornecedor, ctx: Contexto, db_path: str = DB_PATH) -> int:
    apply_migrations(db_path)
    if not (fornecedor.nome or "").strip():
        raise CampoObrigatorioAusente("nome")
    fornecedor_id = FornecedorRepo(db_path).inserir(fornecedor, ctx)
    log_database_operation("fornecedor", "INSERT", 1, fornecedor_id=fornecedor_id, nome=fornecedor.nome)
    return fornecedor_id


def buscar_produtos(termo: str, ctx: Contexto, db_path: str = DB_PATH, limite: int = 10) -> List[Produto]:
    apply_migrations(db_path)
    return ProdutoRepo(db_path).buscar(termo, ctx, limite=limite)


def importar_produtos(path: str, ctx: Contexto, db_path: str = DB_PATH) -> Dict[str, Any]:
    """Importa um catálogo XLSX. Produtos com código já cadastrado são atualizados.

    O estoque da planilha só vale como saldo inicial de produtos novos; o
    estoque de um produto existente muda apenas por recebimento (``entrada``).

    Linhas inválidas são reportadas (linha da planilha, mensagem) e não
    impedem as demais.
    """
    log_system_event("importar_produtos_start", {"file_path": path})
    apply_migrations(db_path)
    create_views(db_path)

    rows = load_produtos_from_xlsx(path)
    log_file_operation("import", path, rows_processed=len(rows))
    repo = ProdutoRepo(db_path)

    inseridos = atualizados = 0
    erros: List[Dict[str, Any]] = []
    for linha, row in enumerate(rows, start=2):
        try:
            produto = _produto_de_linha(row)
        except ErroValidacao as e:
            erros.append({"linha": linha, "mensagem": str(e)})
            continue
        existente: Optional[Produto] = repo.get_by_codigo(produto.codigo, ctx) if produto.codigo else None
        if existente is None:
            repo.inserir(produto, ctx)
            inseridos += 1
            continue
        campos = {
            "nome": produto.nome,
            "laboratorio": produto.laboratorio,
            "estoque_min": produto.estoque_min,
            "custo_unitario": produto.custo_unitario,
            "preco_unidade": produto.preco_unidade,
            "lote": produto.lote,
            "data_validade": produto.data_validade,
        }
        repo.atualizar(existente.id, campos, ProdutoRepo.embalagens_de(produto), substituir_embalagens=True)
        atualizados += 1

    info = {
        "tipo": "Produtos",
        "arquivo": path,
        "total": len(rows),
        "inseridos": inseridos,
        "atualizados": atualizados,
        "erros": erros,
    }
    log_transaction("importar_produtos", {"file": path, "rows_count": len(rows)}, result=info)
    return info
