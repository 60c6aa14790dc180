from pathlib import Path

import pytest

from farmacia.domain.erros import ValorInvalido
from farmacia.domain.models import Contexto, Fornecedor, Produto
from farmacia.infra.migrations import apply_migrations
from farmacia.infra.repositories import FornecedorRepo, ParamsRepo, ProdutoRepo
from farmacia.usecases.verificar_estoque import TipoSugestao, run_verificar, sugerir_reposicao

CTX = Contexto(empresa_id=1, sede_id=1, usuario="ana")


def _p(pid, estoque, minimo=0, lab="Bayer", **kw):
    return Produto(id=pid, nome=f"Produto {pid}", estoque=estoque, estoque_min=minimo, laboratorio=lab, **kw)


def test_critico_tem_prioridade_sobre_proativo():
    s = sugerir_reposicao([_p(1, 5, 10), _p(2, 30)])
    assert s.tipo == TipoSugestao.CRITICO
    [c] = s.candidatos()
    assert c.produto.id == 1
    assert c.quantidade == 10
    assert c.selecionado


def test_minimo_zero_nao_e_critico():
    s = sugerir_reposicao([_p(1, 0, 0)])
    assert s.tipo == TipoSugestao.NENHUM
    assert s.grupos == {}


def test_proativo_quando_nao_ha_criticos():
    s = sugerir_reposicao([_p(1, 30), _p(2, 80)], teto=50, piso=20)
    assert s.tipo == TipoSugestao.PROATIVO
    [c] = s.candidatos()
    assert c.produto.id == 1
    assert c.quantidade == 20


def test_proativo_independe_do_minimo():
    s = sugerir_reposicao([_p(1, 15, 10)], teto=50)
    assert s.tipo == TipoSugestao.PROATIVO
    assert s.candidatos()[0].quantidade == 35


def test_agrupa_por_laboratorio_e_sem_laboratorio():
    s = sugerir_reposicao([_p(1, 1, 5, "Bayer"), _p(2, 0, 5, None), _p(3, 2, 5, "  "), _p(4, 0, 3, "Abbott")])
    assert list(s.grupos) == ["Abbott", "Bayer", "Sem Laboratório"]
    assert [c.produto.id for c in s.grupos["Sem Laboratório"]] == [2, 3]


def test_inativos_nao_entram():
    s = sugerir_reposicao([_p(1, 0, 5, ativo=False)])
    assert s.tipo == TipoSugestao.NENHUM


def test_selecionar_e_ajustar_quantidade():
    s = sugerir_reposicao([_p(1, 0, 5), _p(2, 1, 5)])
    s.selecionar(1, False)
    s.ajustar_quantidade(2, 12)
    por_id = {c.produto.id: c for c in s.candidatos()}
    assert not por_id[1].selecionado
    assert por_id[2].quantidade == 12
    with pytest.raises(ValorInvalido):
        s.ajustar_quantidade(2, -1)
    with pytest.raises(KeyError):
        s.selecionar(99)


def test_run_verificar_usa_parametros_e_tenant(tmp_path: Path):
    db = str(tmp_path / "f.sqlite")
    apply_migrations(db)
    repo = ProdutoRepo(db)
    repo.inserir(Produto(id=None, nome="A", estoque=30, laboratorio="Bayer"), CTX)
    repo.inserir(Produto(id=None, nome="B", estoque=0, estoque_min=10),
                 Contexto(empresa_id=1, sede_id=2, usuario="x"))
    FornecedorRepo(db).inserir(Fornecedor(id=None, nome="Andina"), CTX)
    ParamsRepo(db).set_many([("teto_proativo", "100"), ("piso_proativo", "5")])

    s = run_verificar(CTX, db_path=db)

    assert s.tipo == TipoSugestao.PROATIVO
    assert [c.quantidade for c in s.candidatos()] == [70]
    assert [f.nome for f in s.fornecedores] == ["Andina"]
