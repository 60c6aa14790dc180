from pathlib import Path

from farmacia.domain.models import Contexto, Entrada, Produto
from farmacia.infra.migrations import apply_migrations
from farmacia.infra.repositories import EntradaRepo, ParamsRepo, ProdutoRepo
from farmacia.usecases.relatorios import (
    relatorio_entradas,
    relatorio_estoque_baixo,
    relatorio_notas,
    relatorio_ordens,
    relatorio_produtos_a_vencer,
)

CTX = Contexto(empresa_id=1, sede_id=1, usuario="ana")


def _seed(tmp_path: Path) -> str:
    db = str(tmp_path / "f.sqlite")
    apply_migrations(db)
    repo = ProdutoRepo(db)
    for nome, estoque, minimo, validade in [
        ("Critico", 3, 5, "2025-10-10"),
        ("Alerta", 8, 5, "2025-12-01"),
        ("Ok", 50, 5, "2026-12-01"),
        ("SemMinimoZerado", 0, 0, "2025-01-01"),
    ]:
        repo.inserir(Produto(id=None, nome=nome, estoque=estoque, estoque_min=minimo,
                             lote="L", data_validade=validade), CTX)
    return db


def test_estoque_baixo(tmp_path: Path):
    db = _seed(tmp_path)
    columns, rows, msg = relatorio_estoque_baixo(CTX, db_path=db)
    assert columns[-1] == "Status"
    assert [(r[1], r[5]) for r in rows] == [
        ("SemMinimoZerado", "CRITICO"),
        ("Critico", "CRITICO"),
        ("Alerta", "ALERTA"),
    ]
    assert msg is None
    _, todos, _ = relatorio_estoque_baixo(CTX, db_path=db, incluir_ok=True)
    assert len(todos) == 4


def test_produtos_a_vencer_inclui_vencidos_e_ignora_sem_estoque(tmp_path: Path):
    db = _seed(tmp_path)
    _, rows, _ = relatorio_produtos_a_vencer(CTX, dias=60, db_path=db, hoje="2025-10-19")
    assert [(r[1], r[4], r[6]) for r in rows] == [
        ("Critico", -9, "VENCIDO"),
        ("Alerta", 43, "A VENCER"),
    ]


def test_produtos_a_vencer_usa_parametro(tmp_path: Path):
    db = _seed(tmp_path)
    ParamsRepo(db).set_many([("dias_a_vencer", "5")])
    _, rows, msg = relatorio_produtos_a_vencer(CTX, db_path=db, hoje="2025-10-19")
    assert [r[1] for r in rows] == ["Critico"]


def test_entradas_notas_e_ordens_vazias(tmp_path: Path):
    db = _seed(tmp_path)
    assert relatorio_entradas(CTX, db_path=db)[2] == "Nenhuma entrada registrada."
    assert relatorio_notas(CTX, db_path=db)[1] == []
    assert relatorio_ordens(CTX, db_path=db)[1] == []


def test_notas(tmp_path: Path):
    db = _seed(tmp_path)
    EntradaRepo(db).insert(Entrada(
        nota_fiscal="NF-9", fornecedor="Andina", produto_id=1, produto="Critico", quantidade=10,
        custo_unitario=2.0, margem=30.0, data_entrada="2025-10-01", data_validade=None, lote="L",
        usuario="ana", empresa_id=1, sede_id=1,
    ))
    columns, rows, _ = relatorio_notas(CTX, db_path=db)
    assert rows == [["2025-10-01", "NF-9", "Andina", 1, 10, 20.0, "ana"]]
    _, entradas, _ = relatorio_entradas(CTX, nota_fiscal="NF-9", db_path=db)
    assert entradas[0][3] == "Critico"
