import json
from pathlib import Path

import pandas as pd
import pytest
from rich.console import Console
from typer.testing import CliRunner

from farmacia.adapters import cli
from farmacia.adapters.cli import app
from farmacia.domain.models import Contexto
from farmacia.infra.repositories import EntradaRepo, OrdemCompraRepo, ProdutoRepo

runner = CliRunner()
CTX = Contexto(empresa_id=1, sede_id=1, usuario="ana")


@pytest.fixture(autouse=True)
def console_largura_fixa(monkeypatch):
    monkeypatch.setattr(cli, "console", Console(width=120))


def _invoke(db_path: Path, *args):
    return runner.invoke(app, ["--usuario", "ana", *args, "--db", str(db_path)])


def _seed(db_path: Path):
    r = _invoke(db_path, "fornecedores", "adicionar", "--nome", "Andina")
    assert r.exit_code == 0, r.output
    r = _invoke(db_path, "produtos", "adicionar", "--nome", "Amoxicilina", "--codigo", "P1",
                "--laboratorio", "Bayer", "--estoque-min", "10", "--caixa-u", "10")
    assert r.exit_code == 0, r.output


def test_cli_migrate_and_params_show(tmp_path: Path):
    db_path = tmp_path / "farmacia_test.sqlite"
    result = runner.invoke(app, ["migrate", "--db", str(db_path)])
    assert result.exit_code == 0, result.output

    # params show (deve sair JSON com defaults se nada foi setado)
    result = runner.invoke(app, ["params", "show", "--db", str(db_path)])
    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["margem_padrao"] == "30.0"
    assert data["_defaults"]["teto_proativo"] == 50
    assert data["_db"] == str(db_path)


def test_cli_params_set_and_get(tmp_path: Path):
    db_path = tmp_path / "farmacia_test.sqlite"
    result = runner.invoke(
        app,
        ["params", "set", "--db", str(db_path), "--margem-padrao", "35", "--teto-proativo", "40"],
    )
    assert result.exit_code == 0, result.output

    result = runner.invoke(app, ["params", "get", "margem_padrao", "--db", str(db_path)])
    assert result.exit_code == 0
    assert result.stdout.strip() == "35.0"

    result = runner.invoke(app, ["params", "set", "--db", str(db_path)])
    assert result.exit_code == 1


def test_cli_cadastros(tmp_path: Path):
    db_path = tmp_path / "farmacia_test.sqlite"
    _seed(db_path)

    result = _invoke(db_path, "fornecedores", "listar")
    assert result.exit_code == 0, result.output
    assert "Andina" in result.stdout

    result = _invoke(db_path, "produtos", "listar")
    assert result.exit_code == 0, result.output
    assert "Amoxicilina" in result.stdout

    result = _invoke(db_path, "produtos", "adicionar", "--nome", " ")
    assert result.exit_code == 1


def test_cli_produtos_listar_cabe_em_80_colunas(tmp_path: Path, monkeypatch):
    db_path = tmp_path / "farmacia_test.sqlite"
    _seed(db_path)
    monkeypatch.setattr(cli, "console", Console(width=80))

    result = _invoke(db_path, "produtos", "listar")

    assert result.exit_code == 0, result.output
    assert "Amoxicilina" in result.stdout
    assert "…" not in result.stdout


def _nota(tmp_path: Path, codigo: str) -> str:
    path = tmp_path / f"nota_{codigo}.xlsx"
    pd.DataFrame({
        "Código": [codigo],
        "Quantidade": [2],
        "Unidade compra": ["Caixa"],
        "Custo total": ["80,00"],
        "Lote": ["L1"],
        "Validade": ["2027-03-31"],
    }).to_excel(path, index=False)
    return str(path)


def test_cli_entrada_lote(tmp_path: Path):
    db_path = tmp_path / "farmacia_test.sqlite"
    _seed(db_path)

    result = _invoke(db_path, "entrada-lote", _nota(tmp_path, "P1"), "--nota", "NF-1",
                     "--fornecedor", "1", "--data", "2025-10-01")
    assert result.exit_code == 0, result.output
    assert ProdutoRepo(str(db_path)).get_by_codigo("P1", CTX).estoque == 20
    [mov] = EntradaRepo(str(db_path)).listar(CTX)
    assert (mov["usuario"], mov["quantidade"], mov["fornecedor"]) == ("ana", 20, "Andina")

    result = _invoke(db_path, "lote-validade", "--produto", "Amoxicilina", "--lote", "L1")
    assert result.stdout.strip() == "2027-03-31"


def test_cli_entrada_lote_com_erros_sai_com_codigo_1(tmp_path: Path):
    db_path = tmp_path / "farmacia_test.sqlite"
    _seed(db_path)

    result = _invoke(db_path, "entrada-lote", _nota(tmp_path, "X9"), "--nota", "NF-2", "--fornecedor", "1")
    assert result.exit_code == 1
    assert EntradaRepo(str(db_path)).listar(CTX) == []

    result = _invoke(db_path, "entrada-lote", _nota(tmp_path, "P1"), "--nota", "NF-2", "--fornecedor", "99")
    assert result.exit_code == 1


def test_cli_verificar_e_gerar_pedidos(tmp_path: Path):
    db_path = tmp_path / "farmacia_test.sqlite"
    _seed(db_path)

    result = _invoke(db_path, "verificar")
    assert result.exit_code == 0, result.output
    assert "CRITICO" in result.stdout
    assert "Bayer" in result.stdout

    result = _invoke(db_path, "pedidos", "gerar", "-f", "Bayer=1", "--qtd", "1=12", "--data", "2025-10-19")
    assert result.exit_code == 0, result.output
    assert "Ordens geradas: 1" in result.stdout

    [ordem] = OrdemCompraRepo(str(db_path)).listar(CTX)
    assert (ordem["fornecedor"], ordem["estado"], ordem["usuario"]) == ("Andina", "Rascunho", "ana")
    [item] = OrdemCompraRepo(str(db_path)).itens(ordem["id"])
    assert item.quantidade == 12
