import sqlite3
from pathlib import Path

import pandas as pd
import pytest

from farmacia.domain.carrinho import CarrinhoRecebimento, EstadoCarrinho
from farmacia.domain.erros import CampoObrigatorioAusente, ErroEstado, FalhaCommitParcial, FalhaPersistencia
from farmacia.domain.models import Contexto, Fornecedor, NivelEmbalagem, NotaEntrada, Produto
from farmacia.infra.migrations import apply_migrations
from farmacia.infra.views import create_views
from farmacia.infra.repositories import EntradaRepo, FornecedorRepo, ProdutoRepo
from farmacia.usecases.registrar_entrada import (
    COMPENSACAO_FALHOU,
    COMPENSADO,
    CONFIRMADO,
    FALHOU,
    PENDENTE,
    consultar_validade_lote,
    run_entrada_lote,
    run_recebimento,
)

CTX = Contexto(empresa_id=1, sede_id=1, usuario="ana")
BL, CX = NivelEmbalagem.BLISTER, NivelEmbalagem.CAIXA


def _seed(db_path):
    apply_migrations(db_path)
    create_views(db_path)
    prod = ProdutoRepo(db_path)
    p1 = Produto(id=None, nome="Amoxicilina 500mg", codigo="P1", laboratorio="Genfar",
                 estoque=4, estoque_min=10, custo_unitario=4.0, preco_unidade=5.0,
                 embalagens={CX: 10}, precos={CX: 50.0}, lote="OLD", data_validade="2026-01-01")
    p2 = Produto(id=None, nome="Ibuprofeno 400mg", codigo="P2", laboratorio="Bayer",
                 estoque=0, embalagens={BL: 10})
    prod.inserir(p1, CTX)
    prod.inserir(p2, CTX)
    f = Fornecedor(id=None, nome="Distribuidora Andina")
    FornecedorRepo(db_path).inserir(f, CTX)
    return p1, p2, f


def _carrinho(p1, p2, margem=25):
    c = CarrinhoRecebimento(margem_padrao=margem)
    f = c.selecionar_produto(p1)
    f.quantidade, f.nivel, f.custo_total = 2, CX, 100.0
    f.lote, f.data_validade = "L1", "2027-01-31"
    c.adicionar_item()
    f = c.selecionar_produto(p2)
    f.quantidade, f.nivel, f.custo_total = 3, BL, 60.0
    f.lote, f.data_validade = "L2", "2027-06-30"
    f.definir_preco(BL, 25.0)
    c.adicionar_item()
    return c


def _falhar_em(monkeypatch, produto_id, ao_restaurar=None):
    """Faz `ProdutoRepo.atualizar` falhar para um produto (e opcionalmente na restauração)."""
    original = ProdutoRepo.atualizar

    def atualizar(self, pid, campos, embalagens=None, substituir_embalagens=False):
        if pid == produto_id and not substituir_embalagens:
            raise sqlite3.OperationalError("database is locked")
        if ao_restaurar is not None and pid == ao_restaurar and substituir_embalagens:
            raise sqlite3.OperationalError("disk I/O error")
        return original(self, pid, campos, embalagens, substituir_embalagens)

    monkeypatch.setattr(ProdutoRepo, "atualizar", atualizar)


def test_recebimento_atualiza_produtos_e_registra_entradas(tmp_path: Path):
    db = str(tmp_path / "f.sqlite")
    p1, p2, forn = _seed(db)
    c = _carrinho(p1, p2)

    res = run_recebimento(c, NotaEntrada("NF-100", forn, "2025-10-01"), CTX, db_path=db)

    assert res.sucesso
    assert [i.status for i in res.itens] == [CONFIRMADO, CONFIRMADO]
    assert c.estado == EstadoCarrinho.VAZIO and c.itens == []

    repo = ProdutoRepo(db)
    a = repo.get(p1.id)
    assert a.estoque == 4 + 20
    assert a.custo_unitario == pytest.approx(5.0)
    assert a.preco_unidade == pytest.approx(6.25)
    assert a.precos[CX] == pytest.approx(62.5)
    assert (a.lote, a.data_validade) == ("L1", "2027-01-31")

    b = repo.get(p2.id)
    assert b.estoque == 30
    assert b.custo_unitario == pytest.approx(2.0)
    assert b.precos[BL] == 25.0

    movs = EntradaRepo(db).listar(CTX)
    assert len(movs) == 2
    assert {m["nota_fiscal"] for m in movs} == {"NF-100"}
    assert {m["fornecedor"] for m in movs} == {"Distribuidora Andina"}
    assert {m["data_entrada"] for m in movs} == {"2025-10-01"}
    assert {m["usuario"] for m in movs} == {"ana"}
    assert sorted(m["quantidade"] for m in movs) == [20, 30]


def test_data_de_entrada_padrao_e_hoje(tmp_path: Path):
    from datetime import date

    db = str(tmp_path / "f.sqlite")
    p1, p2, forn = _seed(db)
    res = run_recebimento(_carrinho(p1, p2), NotaEntrada("NF-1", forn), CTX, db_path=db)
    assert res.data_entrada == date.today().isoformat()


def test_falha_em_um_produto_compensa_os_anteriores(tmp_path: Path, monkeypatch):
    db = str(tmp_path / "f.sqlite")
    p1, p2, forn = _seed(db)
    c = _carrinho(p1, p2)
    _falhar_em(monkeypatch, p2.id)

    res = run_recebimento(c, NotaEntrada("NF-200", forn), CTX, db_path=db)

    assert not res.sucesso
    assert [i.status for i in res.itens] == [COMPENSADO, FALHOU]
    assert res.status_movimentos == PENDENTE
    assert isinstance(res.erro, FalhaPersistencia)
    assert not isinstance(res.erro, FalhaCommitParcial)
    with pytest.raises(FalhaPersistencia):
        res.levantar()

    a = ProdutoRepo(db).get(p1.id)
    assert a.estoque == 4
    assert a.custo_unitario == 4.0
    assert a.lote == "OLD"
    assert a.precos == {CX: 50.0}
    assert EntradaRepo(db).listar(CTX) == []

    assert c.estado == EstadoCarrinho.FALHOU
    assert len(c) == 2
    assert not c.conciliacao_pendente


def test_falha_nas_entradas_compensa_todos_os_produtos(tmp_path: Path, monkeypatch):
    db = str(tmp_path / "f.sqlite")
    p1, p2, forn = _seed(db)

    def quebra(self, rows):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(EntradaRepo, "insert_many", quebra)
    res = run_recebimento(_carrinho(p1, p2), NotaEntrada("NF-300", forn), CTX, db_path=db)

    assert not res.sucesso
    assert res.status_movimentos == FALHOU
    assert [i.status for i in res.itens] == [COMPENSADO, COMPENSADO]
    assert isinstance(res.erro, FalhaPersistencia)
    assert ProdutoRepo(db).get(p1.id).estoque == 4
    assert ProdutoRepo(db).get(p2.id).estoque == 0
    assert ProdutoRepo(db).get(p2.id).embalagens == {BL: 10}


def test_falha_na_compensacao_e_commit_parcial(tmp_path: Path, monkeypatch):
    db = str(tmp_path / "f.sqlite")
    p1, p2, forn = _seed(db)
    _falhar_em(monkeypatch, p2.id, ao_restaurar=p1.id)

    res = run_recebimento(_carrinho(p1, p2), NotaEntrada("NF-400", forn), CTX, db_path=db)

    assert not res.sucesso
    assert [i.status for i in res.itens] == [COMPENSACAO_FALHOU, FALHOU]
    assert isinstance(res.erro, FalhaCommitParcial)
    assert "Amoxicilina" in str(res.erro)
    assert ProdutoRepo(db).get(p1.id).estoque == 24


def test_sem_compensacao_reporta_resultado_parcial(tmp_path: Path, monkeypatch):
    db = str(tmp_path / "f.sqlite")
    p1, p2, forn = _seed(db)
    _falhar_em(monkeypatch, p2.id)

    res = run_recebimento(_carrinho(p1, p2), NotaEntrada("NF-500", forn), CTX, db_path=db, compensar=False)

    assert not res.sucesso
    assert [i.status for i in res.itens] == [CONFIRMADO, FALHOU]
    assert res.status_movimentos == CONFIRMADO
    assert isinstance(res.erro, FalhaCommitParcial)
    assert ProdutoRepo(db).get(p1.id).estoque == 24
    assert len(EntradaRepo(db).listar(CTX)) == 2


def test_nova_tentativa_apos_gravacao_parcial_envia_apenas_itens_nao_gravados(tmp_path: Path, monkeypatch):
    db = str(tmp_path / "f.sqlite")
    p1, p2, forn = _seed(db)
    c = _carrinho(p1, p2)
    nota = NotaEntrada("NF-600", forn)
    _falhar_em(monkeypatch, p2.id, ao_restaurar=p1.id)

    res = run_recebimento(c, nota, CTX, db_path=db)
    assert res.parcial
    assert c.conciliacao_pendente
    with pytest.raises(ErroEstado):
        run_recebimento(c, nota, CTX, db_path=db)
    with pytest.raises(ErroEstado):
        c.remover_item(0)

    monkeypatch.undo()
    [retirado] = c.conciliar()
    assert retirado.produto.id == p1.id
    assert [i.produto.id for i in c.itens] == [p2.id]

    res = run_recebimento(c, nota, CTX, db_path=db)

    assert res.sucesso
    assert ProdutoRepo(db).get(p1.id).estoque == 24
    assert ProdutoRepo(db).get(p2.id).estoque == 30
    assert [m["produto"] for m in EntradaRepo(db).listar(CTX)] == ["Ibuprofeno 400mg"]


def test_sem_compensacao_movimentos_gravados_nao_sao_reenviados(tmp_path: Path, monkeypatch):
    db = str(tmp_path / "f.sqlite")
    p1, p2, forn = _seed(db)
    c = _carrinho(p1, p2)
    nota = NotaEntrada("NF-700", forn)
    _falhar_em(monkeypatch, p2.id)

    run_recebimento(c, nota, CTX, db_path=db, compensar=False)
    monkeypatch.undo()

    assert len(c.conciliar()) == 2
    assert c.estado == EstadoCarrinho.VAZIO
    with pytest.raises(CampoObrigatorioAusente):
        run_recebimento(c, nota, CTX, db_path=db, compensar=False)
    assert len(EntradaRepo(db).listar(CTX)) == 2
    assert ProdutoRepo(db).get(p1.id).estoque == 24


def test_validade_lembrada_por_lote(tmp_path: Path):
    db = str(tmp_path / "f.sqlite")
    p1, p2, forn = _seed(db)
    run_recebimento(_carrinho(p1, p2), NotaEntrada("NF-1", forn, "2025-01-10"), CTX, db_path=db)

    assert consultar_validade_lote("Amoxicilina 500mg", "L1", CTX, db_path=db) == "2027-01-31"
    assert consultar_validade_lote("Amoxicilina 500mg", "XX", CTX, db_path=db) is None
    outra_sede = Contexto(empresa_id=1, sede_id=2, usuario="ana")
    assert consultar_validade_lote("Amoxicilina 500mg", "L1", outra_sede, db_path=db) is None

    c = CarrinhoRecebimento()
    f = c.selecionar_produto(ProdutoRepo(db).get(p1.id))
    f.lote = "L1"
    assert c.preencher_validade_por_lote(EntradaRepo(db), CTX) == "2027-01-31"


# -----------------------
# entrada em lote (XLSX)
# -----------------------

def _xlsx(tmp_path: Path, linhas) -> str:
    path = tmp_path / "nota.xlsx"
    pd.DataFrame(linhas).to_excel(path, index=False)
    return str(path)


def test_entrada_lote_grava_nota_completa(tmp_path: Path):
    db = str(tmp_path / "f.sqlite")
    p1, p2, forn = _seed(db)
    path = _xlsx(tmp_path, {
        "Código": ["P1", None],
        "Produto": [None, "ibuprofeno 400mg"],
        "Quantidade": [2, 5],
        "Unidade compra": ["Caja", ""],
        "Custo total": ["100,00", "S/ 10,00"],
        "Margem": [25, None],
        "Lote": ["L1", "L2"],
        "Validade": ["31/01/2027", "2027-06-30"],
    })

    info = run_entrada_lote(path, "NF-900", forn.id, CTX, db_path=db, data_entrada="01/10/2025")

    assert info["gravado"] is True
    assert info["erros"] == []
    assert info["total"] == 2
    assert info["valor_total"] == pytest.approx(110.0)
    assert ProdutoRepo(db).get(p1.id).estoque == 24
    b = ProdutoRepo(db).get(p2.id)
    assert b.estoque == 5
    assert b.preco_unidade == pytest.approx(2.6)
    assert {m["data_entrada"] for m in EntradaRepo(db).listar(CTX)} == {"2025-10-01"}


def test_entrada_lote_com_linha_invalida_nao_grava_nada(tmp_path: Path):
    db = str(tmp_path / "f.sqlite")
    p1, p2, forn = _seed(db)
    path = _xlsx(tmp_path, {
        "Código": ["P1", "P2", "P9"],
        "Quantidade": [1, 1, 1],
        "Unidade compra": ["Caixa", "Caixa", "Unidade"],
        "Custo total": [50, 10, 1],
        "Lote": ["L1", "L2", "L3"],
        "Validade": ["2027-01-31", "2027-01-31", "2027-01-31"],
    })

    info = run_entrada_lote(path, "NF-901", forn.id, CTX, db_path=db)

    assert info["gravado"] is False
    assert [e["linha"] for e in info["erros"]] == [3, 4]
    assert "Caixa" in info["erros"][0]["mensagem"]
    assert ProdutoRepo(db).get(p1.id).estoque == 4
    assert EntradaRepo(db).listar(CTX) == []


def test_entrada_lote_exige_fornecedor_existente(tmp_path: Path):
    db = str(tmp_path / "f.sqlite")
    _seed(db)
    path = _xlsx(tmp_path, {"Código": ["P1"], "Quantidade": [1], "Custo total": [5],
                            "Lote": ["L"], "Validade": ["2027-01-01"]})
    with pytest.raises(CampoObrigatorioAusente):
        run_entrada_lote(path, "NF-1", 999, CTX, db_path=db)
