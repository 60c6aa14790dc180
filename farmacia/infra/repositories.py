# farmacia/infra/repositories.py
"""
Repositórios (DAO) para acesso e manipulação de dados no SQLite.

Classes:
- ParamsRepo
- ProdutoRepo
- FornecedorRepo
- EntradaRepo
- OrdemCompraRepo

Toda leitura de catálogo é filtrada por empresa/sede do ``Contexto``.
Cada método abre sua própria conexão: não há transação entre chamadas.
"""

from __future__ import annotations

from dataclasses import asdict, is_dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .db import connect, rows_as_dicts
from farmacia.domain.models import (
    Contexto,
    Entrada,
    Fornecedor,
    ItemOrdemCompra,
    NivelEmbalagem,
    OrdemCompra,
    Produto,
)


# -------------------------
# Helpers
# -------------------------

def _as_dict(row: Any) -> Dict[str, Any]:
    if isinstance(row, dict):
        return row
    if is_dataclass(row):
        return asdict(row)
    raise TypeError("row must be dict or dataclass")


_PRODUTO_COLS = (
    "id, empresa_id, sede_id, codigo, nome, laboratorio, estoque, estoque_min, "
    "custo_unitario, preco_unidade, lote, data_validade, ativo"
)

# Colunas de `produto` que podem ser alteradas por `ProdutoRepo.atualizar`
CAMPOS_PRODUTO = (
    "codigo", "nome", "laboratorio", "estoque", "estoque_min", "custo_unitario",
    "preco_unidade", "lote", "data_validade", "ativo",
)

# nivel -> (unidades, preco_venda)
Embalagens = Mapping[NivelEmbalagem, Tuple[Optional[int], Optional[float]]]


# -------------------------
# Params
# -------------------------

class ParamsRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def set_many(self, items: Iterable[Tuple[str, str]]) -> None:
        with connect(self.db_path) as c:
            c.executemany(
                """
                INSERT INTO params (chave, valor)
                VALUES (?, ?)
                ON CONFLICT(chave) DO UPDATE SET valor=excluded.valor
                """,
                list(items),
            )

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        with connect(self.db_path) as c:
            row = c.execute("SELECT valor FROM params WHERE chave = ?", (key,)).fetchone()
            return row[0] if row else default

    def get_float(self, key: str, default: float) -> float:
        v = self.get(key, None)
        if v is None:
            return default
        try:
            return float(v)
        except ValueError:
            return default


# -------------------------
# Produto
# -------------------------

class ProdutoRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path

    @staticmethod
    def _from_row(row: Mapping[str, Any], emb_rows: List[Mapping[str, Any]]) -> Produto:
        embalagens: Dict[NivelEmbalagem, int] = {}
        precos: Dict[NivelEmbalagem, float] = {}
        for e in emb_rows:
            nivel = NivelEmbalagem(e["nivel"])
            embalagens[nivel] = int(e["unidades"])
            if e["preco_venda"] is not None:
                precos[nivel] = float(e["preco_venda"])
        return Produto(
            id=row["id"],
            nome=row["nome"],
            codigo=row["codigo"],
            laboratorio=row["laboratorio"],
            estoque=int(row["estoque"] or 0),
            estoque_min=int(row["estoque_min"] or 0),
            custo_unitario=row["custo_unitario"],
            preco_unidade=row["preco_unidade"],
            embalagens=embalagens,
            precos=precos,
            lote=row["lote"],
            data_validade=row["data_validade"],
            ativo=bool(row["ativo"]),
            empresa_id=row["empresa_id"],
            sede_id=row["sede_id"],
        )

    def _load(self, c, where: str, params: Tuple[Any, ...]) -> List[Produto]:
        rows = rows_as_dicts(c.execute(f"SELECT {_PRODUTO_COLS} FROM produto WHERE {where} ORDER BY nome", params))
        if not rows:
            return []
        ids = [r["id"] for r in rows]
        marks = ",".join("?" for _ in ids)
        emb = rows_as_dicts(c.execute(
            f"SELECT produto_id, nivel, unidades, preco_venda FROM produto_embalagem WHERE produto_id IN ({marks})",
            ids,
        ))
        by_id: Dict[int, List[Dict[str, Any]]] = {}
        for e in emb:
            by_id.setdefault(e["produto_id"], []).append(e)
        return [self._from_row(r, by_id.get(r["id"], [])) for r in rows]

    @staticmethod
    def _write_embalagens(c, produto_id: int, embalagens: Embalagens, substituir: bool) -> None:
        if substituir:
            c.execute("DELETE FROM produto_embalagem WHERE produto_id = ?", (produto_id,))
        for nivel, (unidades, preco) in embalagens.items():
            nivel = NivelEmbalagem(nivel)
            if nivel == NivelEmbalagem.UNIDADE:
                continue
            if not unidades or int(unidades) <= 0:
                c.execute("DELETE FROM produto_embalagem WHERE produto_id = ? AND nivel = ?",
                          (produto_id, nivel.value))
                continue
            c.execute(
                """
                INSERT INTO produto_embalagem (produto_id, nivel, unidades, preco_venda)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(produto_id, nivel) DO UPDATE SET
                    unidades=excluded.unidades,
                    preco_venda=excluded.preco_venda
                """,
                (produto_id, nivel.value, int(unidades), preco),
            )

    @staticmethod
    def embalagens_de(produto: Produto) -> Dict[NivelEmbalagem, Tuple[Optional[int], Optional[float]]]:
        return {n: (u, produto.precos.get(n)) for n, u in produto.embalagens.items()}

    def inserir(self, produto: Produto, ctx: Contexto) -> int:
        d = asdict(produto)
        d.update(empresa_id=ctx.empresa_id, sede_id=ctx.sede_id, ativo=int(produto.ativo))
        with connect(self.db_path) as c:
            cur = c.execute(
                """
                INSERT INTO produto
                    (empresa_id, sede_id, codigo, nome, laboratorio, estoque, estoque_min,
                     custo_unitario, preco_unidade, lote, data_validade, ativo)
                VALUES
                    (:empresa_id, :sede_id, :codigo, :nome, :laboratorio, :estoque, :estoque_min,
                     :custo_unitario, :preco_unidade, :lote, :data_validade, :ativo)
                """,
                d,
            )
            produto_id = int(cur.lastrowid)
            self._write_embalagens(c, produto_id, self.embalagens_de(produto), substituir=True)
        produto.id = produto_id
        produto.empresa_id, produto.sede_id = ctx.empresa_id, ctx.sede_id
        return produto_id

    def get(self, produto_id: int) -> Optional[Produto]:
        with connect(self.db_path) as c:
            found = self._load(c, "id = ?", (produto_id,))
        return found[0] if found else None

    def get_all(self, ctx: Contexto, apenas_ativos: bool = True) -> List[Produto]:
        where = "empresa_id = ? AND sede_id = ?"
        if apenas_ativos:
            where += " AND ativo = 1"
        with connect(self.db_path) as c:
            return self._load(c, where, (ctx.empresa_id, ctx.sede_id))

    def get_by_codigo(self, codigo: str, ctx: Contexto) -> Optional[Produto]:
        with connect(self.db_path) as c:
            found = self._load(c, "empresa_id = ? AND sede_id = ? AND codigo = ?",
                               (ctx.empresa_id, ctx.sede_id, codigo))
        return found[0] if found else None

    def buscar(self, termo: str, ctx: Contexto, limite: int = 10) -> List[Produto]:
        """Busca por nome (parcial, sem diferenciar maiúsculas) ou código exato."""
        like = f"%{termo.strip()}%"
        with connect(self.db_path) as c:
            return self._load(
                c,
                "empresa_id = ? AND sede_id = ? AND ativo = 1 AND (nome LIKE ? OR codigo = ?)",
                (ctx.empresa_id, ctx.sede_id, like, termo.strip()),
            )[:limite]

    def atualizar(
        self,
        produto_id: int,
        campos: Mapping[str, Any],
        embalagens: Optional[Embalagens] = None,
        substituir_embalagens: bool = False,
    ) -> None:
        """Atualiza um produto e, opcionalmente, seus níveis de embalagem.

        A alteração de um único produto é atômica (mesma conexão).
        """
        invalidos = set(campos) - set(CAMPOS_PRODUTO)
        if invalidos:
            raise ValueError(f"Campos não atualizáveis: {sorted(invalidos)}")
        with connect(self.db_path) as c:
            if c.execute("SELECT 1 FROM produto WHERE id = ?", (produto_id,)).fetchone() is None:
                raise LookupError(f"Produto {produto_id} não encontrado")
            if campos:
                sets = ", ".join(f"{k} = :{k}" for k in campos)
                c.execute(f"UPDATE produto SET {sets} WHERE id = :_id", {**campos, "_id": produto_id})
            if embalagens is not None:
                self._write_embalagens(c, produto_id, embalagens, substituir_embalagens)


# -------------------------
# Fornecedor
# -------------------------

class FornecedorRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def inserir(self, fornecedor: Fornecedor, ctx: Contexto) -> int:
        d = asdict(fornecedor)
        d.update(empresa_id=ctx.empresa_id, sede_id=ctx.sede_id)
        with connect(self.db_path) as c:
            cur = c.execute(
                """
                INSERT INTO fornecedor (empresa_id, sede_id, nome, ruc, contato, telefone, email)
                VALUES (:empresa_id, :sede_id, :nome, :ruc, :contato, :telefone, :email)
                """,
                d,
            )
        fornecedor.id = int(cur.lastrowid)
        fornecedor.empresa_id, fornecedor.sede_id = ctx.empresa_id, ctx.sede_id
        return fornecedor.id

    def get_all(self, ctx: Contexto) -> List[Fornecedor]:
        with connect(self.db_path) as c:
            rows = rows_as_dicts(c.execute(
                """SELECT id, nome, ruc, contato, telefone, email, empresa_id, sede_id
                   FROM fornecedor WHERE empresa_id = ? AND sede_id = ? ORDER BY nome""",
                (ctx.empresa_id, ctx.sede_id),
            ))
        return [Fornecedor(**r) for r in rows]

    def get(self, fornecedor_id: int) -> Optional[Fornecedor]:
        with connect(self.db_path) as c:
            rows = rows_as_dicts(c.execute(
                """SELECT id, nome, ruc, contato, telefone, email, empresa_id, sede_id
                   FROM fornecedor WHERE id = ?""",
                (fornecedor_id,),
            ))
        return Fornecedor(**rows[0]) if rows else None


# -------------------------
# Movimentações: Entrada
# -------------------------

class EntradaRepo:
    """Somente inserção e leitura: movimentações são imutáveis."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    def insert(self, row: Any) -> None:
        self.insert_many([row])

    def insert_many(self, rows: Iterable[Any]) -> None:
        rows = [_as_dict(r) for r in rows]
        if not rows:
            return
        for r in rows:
            r.pop("id", None)
        with connect(self.db_path) as c:
            c.executemany(
                """
                INSERT INTO entrada
                    (empresa_id, sede_id, nota_fiscal, fornecedor, produto_id, produto,
                     quantidade, custo_unitario, margem, data_entrada, data_validade,
                     lote, usuario)
                VALUES
                    (:empresa_id, :sede_id, :nota_fiscal, :fornecedor, :produto_id, :produto,
                     :quantidade, :custo_unitario, :margem, :data_entrada, :data_validade,
                     :lote, :usuario)
                """,
                rows,
            )

    def ultima_validade(self, produto_nome: str, lote: str, ctx: Contexto) -> Optional[str]:
        """Validade da entrada mais recente de (produto, lote), se houver."""
        with connect(self.db_path) as c:
            row = c.execute(
                """
                SELECT data_validade FROM entrada
                WHERE produto = ? AND lote = ? AND empresa_id = ? AND sede_id = ?
                  AND data_validade IS NOT NULL
                ORDER BY data_entrada DESC, id DESC
                LIMIT 1
                """,
                (produto_nome, lote, ctx.empresa_id, ctx.sede_id),
            ).fetchone()
        return row[0] if row else None

    def listar(self, ctx: Contexto, nota_fiscal: Optional[str] = None,
               limite: Optional[int] = None) -> List[Dict[str, Any]]:
        sql = """SELECT id, data_entrada, nota_fiscal, fornecedor, produto, quantidade,
                        custo_unitario, margem, lote, data_validade, usuario
                 FROM entrada WHERE empresa_id = ? AND sede_id = ?"""
        params: List[Any] = [ctx.empresa_id, ctx.sede_id]
        if nota_fiscal:
            sql += " AND nota_fiscal = ?"
            params.append(nota_fiscal)
        sql += " ORDER BY data_entrada DESC, id DESC"
        if limite:
            sql += " LIMIT ?"
            params.append(int(limite))
        with connect(self.db_path) as c:
            return rows_as_dicts(c.execute(sql, params))

    def totais_por_nota(self, ctx: Contexto) -> List[Dict[str, Any]]:
        with connect(self.db_path) as c:
            return rows_as_dicts(c.execute(
                """SELECT data_entrada, nota_fiscal, fornecedor, itens, unidades, valor_total, usuario
                   FROM vw_entradas_nota WHERE empresa_id = ? AND sede_id = ?
                   ORDER BY data_entrada DESC""",
                (ctx.empresa_id, ctx.sede_id),
            ))


# -------------------------
# Ordens de compra
# -------------------------

class OrdemCompraRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def insert_ordem(self, ordem: OrdemCompra) -> int:
        with connect(self.db_path) as c:
            cur = c.execute(
                """
                INSERT INTO ordem_compra (empresa_id, sede_id, fornecedor, data_pedido, estado, usuario)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (ordem.empresa_id, ordem.sede_id, ordem.fornecedor, ordem.data_pedido,
                 ordem.estado, ordem.usuario),
            )
        return int(cur.lastrowid)

    def insert_itens(self, ordem_id: int, itens: Iterable[ItemOrdemCompra]) -> None:
        rows = [
            (ordem_id, i.produto_id, i.produto_nome, int(i.quantidade), float(i.custo_unitario_estimado or 0.0))
            for i in itens
        ]
        with connect(self.db_path) as c:
            c.executemany(
                """
                INSERT INTO ordem_compra_item
                    (ordem_id, produto_id, produto_nome, quantidade, custo_unitario_estimado)
                VALUES (?, ?, ?, ?, ?)
                """,
                rows,
            )

    def delete_ordem(self, ordem_id: int) -> None:
        with connect(self.db_path) as c:
            c.execute("DELETE FROM ordem_compra WHERE id = ?", (ordem_id,))

    def listar(self, ctx: Contexto) -> List[Dict[str, Any]]:
        with connect(self.db_path) as c:
            return rows_as_dicts(c.execute(
                """
                SELECT o.id, o.fornecedor, o.data_pedido, o.estado, o.usuario,
                       COUNT(i.id) AS itens,
                       COALESCE(SUM(i.quantidade * i.custo_unitario_estimado), 0.0) AS valor_estimado
                FROM ordem_compra o
                LEFT JOIN ordem_compra_item i ON i.ordem_id = o.id
                WHERE o.empresa_id = ? AND o.sede_id = ?
                GROUP BY o.id
                ORDER BY o.data_pedido DESC, o.id DESC
                """,
                (ctx.empresa_id, ctx.sede_id),
            ))

    def itens(self, ordem_id: int) -> List[ItemOrdemCompra]:
        with connect(self.db_path) as c:
            rows = rows_as_dicts(c.execute(
                """SELECT id, ordem_id, produto_id, produto_nome, quantidade, custo_unitario_estimado
                   FROM ordem_compra_item WHERE ordem_id = ? ORDER BY id""",
                (ordem_id,),
            ))
        return [ItemOrdemCompra(**r) for r in rows]
