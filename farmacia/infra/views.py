"""
Criação de views auxiliares para consultas frequentes.

Views criadas:
- vw_entradas_nota:   totais por nota fiscal (itens, unidades, valor).
- vw_estoque_produto: produto com os níveis de embalagem achatados em colunas.

Obs.:
- As views assumem que as migrações V1→V2 já foram aplicadas.
- Um conjunto de índices úteis também é criado, caso não existam.
"""

from __future__ import annotations

from .db import connect


def create_views(db_path: str) -> None:
    with connect(db_path) as c:
        c.executescript(
            """
            ---------------------------
            -- Totais por nota fiscal
            ---------------------------
            DROP VIEW IF EXISTS vw_entradas_nota;
            CREATE VIEW vw_entradas_nota AS
            SELECT
                empresa_id,
                sede_id,
                nota_fiscal,
                fornecedor,
                MIN(date(data_entrada))             AS data_entrada,
                COUNT(*)                            AS itens,
                SUM(quantidade)                     AS unidades,
                ROUND(SUM(quantidade * custo_unitario), 2) AS valor_total,
                MAX(usuario)                        AS usuario
            FROM entrada
            GROUP BY empresa_id, sede_id, nota_fiscal, fornecedor;

            ---------------------------
            -- Produto + embalagens em colunas
            ---------------------------
            DROP VIEW IF EXISTS vw_estoque_produto;
            CREATE VIEW vw_estoque_produto AS
            SELECT
                p.id,
                p.empresa_id,
                p.sede_id,
                p.codigo,
                p.nome,
                p.laboratorio,
                p.estoque,
                p.estoque_min,
                p.custo_unitario,
                p.preco_unidade,
                MAX(CASE WHEN e.nivel = 'Blister' THEN e.unidades END) AS blister_u,
                MAX(CASE WHEN e.nivel = 'Caixa'   THEN e.unidades END) AS caixa_u,
                MAX(CASE WHEN e.nivel = 'Pacote'  THEN e.unidades END) AS pacote_u,
                p.lote,
                date(p.data_validade) AS data_validade,
                p.ativo
            FROM produto p
            LEFT JOIN produto_embalagem e ON e.produto_id = p.id
            GROUP BY p.id;
            """
        )

        c.executescript(
            """
            CREATE INDEX IF NOT EXISTS idx_produto_tenant   ON produto(empresa_id, sede_id);
            CREATE INDEX IF NOT EXISTS idx_produto_codigo   ON produto(codigo);
            CREATE INDEX IF NOT EXISTS idx_fornecedor_tenant ON fornecedor(empresa_id, sede_id);
            CREATE INDEX IF NOT EXISTS idx_entrada_lote     ON entrada(produto, lote);
            CREATE INDEX IF NOT EXISTS idx_entrada_nota     ON entrada(nota_fiscal);
            CREATE INDEX IF NOT EXISTS idx_entrada_data     ON entrada(data_entrada);
            CREATE INDEX IF NOT EXISTS idx_ordem_item_ordem ON ordem_compra_item(ordem_id);
            """
        )
