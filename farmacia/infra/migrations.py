"""
Migrações de schema usando PRAGMA user_version.

V1: tabelas base (produto, embalagens, fornecedor, entrada, ordens de compra)
V2: coluna `produto.ativo` e gatilhos que tornam `entrada` somente-inserção
"""

from __future__ import annotations

from typing import List
from .db import connect


SCHEMA_V1: List[str] = [
    # Parâmetros K/V
    """
    CREATE TABLE IF NOT EXISTS params (
        chave TEXT PRIMARY KEY,
        valor TEXT
    );
    """,
    # Cadastro de produtos (estoque em unidades canônicas)
    """
    CREATE TABLE IF NOT EXISTS produto (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        empresa_id INTEGER NOT NULL,
        sede_id INTEGER NOT NULL,
        codigo TEXT,
        nome TEXT NOT NULL,
        laboratorio TEXT,
        estoque INTEGER NOT NULL DEFAULT 0,
        estoque_min INTEGER NOT NULL DEFAULT 0,
        custo_unitario REAL,
        preco_unidade REAL,
        lote TEXT,
        data_validade TEXT
    );
    """,
    # Níveis de embalagem por produto (mapa esparso nivel -> fator/preço)
    """
    CREATE TABLE IF NOT EXISTS produto_embalagem (
        produto_id INTEGER NOT NULL,
        nivel TEXT NOT NULL,          -- 'Blister' | 'Caixa' | 'Pacote' | ...
        unidades INTEGER NOT NULL,
        preco_venda REAL,
        PRIMARY KEY (produto_id, nivel),
        FOREIGN KEY (produto_id) REFERENCES produto(id) ON DELETE CASCADE
    );
    """,
    # Fornecedores
    """
    CREATE TABLE IF NOT EXISTS fornecedor (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        empresa_id INTEGER NOT NULL,
        sede_id INTEGER NOT NULL,
        nome TEXT NOT NULL,
        ruc TEXT,
        contato TEXT,
        telefone TEXT,
        email TEXT
    );
    """,
    # Movimentações de entrada (auditoria)
    """
    CREATE TABLE IF NOT EXISTS entrada (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        empresa_id INTEGER NOT NULL,
        sede_id INTEGER NOT NULL,
        nota_fiscal TEXT NOT NULL,
        fornecedor TEXT NOT NULL,
        produto_id INTEGER,
        produto TEXT NOT NULL,
        quantidade INTEGER NOT NULL,
        custo_unitario REAL NOT NULL,
        margem REAL,
        data_entrada TEXT NOT NULL,
        data_validade TEXT,
        lote TEXT,
        usuario TEXT,
        criado_em TEXT DEFAULT (datetime('now')),
        FOREIGN KEY (produto_id) REFERENCES produto(id)
    );
    """,
    # Ordens de compra
    """
    CREATE TABLE IF NOT EXISTS ordem_compra (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        empresa_id INTEGER NOT NULL,
        sede_id INTEGER NOT NULL,
        fornecedor TEXT NOT NULL,
        data_pedido TEXT NOT NULL,
        estado TEXT NOT NULL,
        usuario TEXT,
        criado_em TEXT DEFAULT (datetime('now'))
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS ordem_compra_item (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        ordem_id INTEGER NOT NULL,
        produto_id INTEGER NOT NULL,
        produto_nome TEXT NOT NULL,
        quantidade INTEGER NOT NULL,
        custo_unitario_estimado REAL NOT NULL DEFAULT 0,
        FOREIGN KEY (ordem_id) REFERENCES ordem_compra(id) ON DELETE CASCADE,
        FOREIGN KEY (produto_id) REFERENCES produto(id)
    );
    """,
]

SCHEMA_V2_TRIGGERS: List[str] = [
    """
    CREATE TRIGGER IF NOT EXISTS trg_entrada_sem_update
    BEFORE UPDATE ON entrada
    BEGIN
        SELECT RAISE(ABORT, 'entrada e somente-insercao');
    END;
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_entrada_sem_delete
    BEFORE DELETE ON entrada
    BEGIN
        SELECT RAISE(ABORT, 'entrada e somente-insercao');
    END;
    """,
]


def _ensure_column(conn, table: str, column: str, ddl: str) -> None:
    """Adiciona coluna se não existir."""
    cur = conn.execute(f"PRAGMA table_info({table});")
    cols = [r[1] for r in cur.fetchall()]  # r[1] é o nome da coluna
    if column not in cols:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {ddl};")


def _apply_v1(conn) -> None:
    for sql in SCHEMA_V1:
        conn.executescript(sql)


def _apply_v2(conn) -> None:
    _ensure_column(conn, "produto", "ativo", "ativo INTEGER NOT NULL DEFAULT 1")
    for sql in SCHEMA_V2_TRIGGERS:
        conn.executescript(sql)


def apply_migrations(db_path: str) -> None:
    """Aplica migrações incrementais de acordo com PRAGMA user_version."""
    with connect(db_path) as conn:
        ver = conn.execute("PRAGMA user_version;").fetchone()[0] or 0

        if ver < 1:
            _apply_v1(conn)
            conn.execute("PRAGMA user_version = 1;")
            ver = 1

        if ver < 2:
            _apply_v2(conn)
            conn.execute("PRAGMA user_version = 2;")
            ver = 2
