"""
Testes dos loaders de XLSX (nota de entrada e catálogo).

Foco:
1. Cabeçalhos em português e espanhol são normalizados
2. Células vazias viram None
3. Datas são convertidas para ISO
"""

from pathlib import Path

import pandas as pd

from farmacia.adapters.planilhas import (
    _normalize_columns,
    load_produtos_from_xlsx,
    load_recebimento_from_xlsx,
)


def test_normalize_columns_aliases():
    df = pd.DataFrame({
        "Código": ["1"],
        "Producto": ["x"],
        "Cantidad": ["2"],
        "Unidad compra": ["Caja"],
        "Costo Total": ["10"],
        "F. Vencimiento": ["2027-01-01"],
        "Caja PV": ["9"],
        "Coluna Estranha": ["?"],
    })
    cols = list(_normalize_columns(df).columns)
    assert cols == ["codigo", "produto", "quantidade", "unidade_compra", "custo_total",
                    "data_validade", "preco_caixa", "coluna_estranha"]


def test_load_recebimento_from_xlsx(tmp_path: Path):
    path = tmp_path / "nota.xlsx"
    pd.DataFrame({
        "Código": ["P1", None],
        "Produto": ["Amoxicilina", "Ibuprofeno"],
        "Quantidade": [2, 10],
        "Embalagem": ["Caixa", None],
        "Custo total": ["100,00", "25.5"],
        "Lote": ["L1", "L2"],
        "Validade": ["31/01/2027", "2027-06-30"],
        "Unidades por caixa": [10, None],
    }).to_excel(path, index=False)

    rows = load_recebimento_from_xlsx(str(path))

    assert len(rows) == 2
    a, b = rows
    assert a["codigo"] == "P1"
    assert a["quantidade"] == "2"
    assert a["unidade_compra"] == "Caixa"
    assert a["custo_total"] == "100,00"
    assert a["data_validade"] == "2027-01-31"
    assert float(a["caixa_u"]) == 10
    assert a["margem"] is None
    assert b["codigo"] is None
    assert b["unidade_compra"] is None
    assert b["data_validade"] == "2027-06-30"
    assert b["caixa_u"] is None


def test_load_produtos_from_xlsx_ignora_linhas_vazias(tmp_path: Path):
    path = tmp_path / "catalogo.xlsx"
    pd.DataFrame({
        "Código": ["P1", None, "P2"],
        "Nombre": ["Amoxicilina", None, "Ibuprofeno"],
        "Laboratorio": ["Genfar", None, None],
        "Stock": [5, None, 0],
        "Stock Min": [10, None, None],
        "Blister U": [10, None, None],
    }).to_excel(path, index=False)

    rows = load_produtos_from_xlsx(str(path))

    assert [r["produto"] for r in rows] == ["Amoxicilina", "Ibuprofeno"]
    assert rows[0]["laboratorio"] == "Genfar"
    assert float(rows[0]["estoque"]) == 5
    assert float(rows[0]["estoque_min"]) == 10
    assert float(rows[0]["blister_u"]) == 10
    assert rows[1]["laboratorio"] is None
