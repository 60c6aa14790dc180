import pytest

from farmacia.domain.erros import (
    CampoObrigatorioAusente,
    NivelEmbalagemIndefinido,
    QuantidadeInvalida,
    ValorInvalido,
)
from farmacia.domain.models import NivelEmbalagem, Produto
from farmacia.domain.precificacao import (
    FormularioItem,
    calcular_precos,
    embalagens_definidas,
    preco_sugerido,
    quantidade_canonica,
)

U, BL, CX, PQ = NivelEmbalagem.UNIDADE, NivelEmbalagem.BLISTER, NivelEmbalagem.CAIXA, NivelEmbalagem.PACOTE


def test_duas_caixas_de_dez_unidades():
    p = calcular_precos(2, CX, {CX: 10}, 100.0, 25.0)
    assert p.quantidade_canonica == 20
    assert p.custo_unitario == pytest.approx(5.0)
    assert p.preco_unidade == pytest.approx(6.25)
    assert p.precos_sugeridos[CX] == pytest.approx(62.5)
    assert set(p.precos_sugeridos) == {U, CX}


def test_preco_por_nivel_e_unidade_vezes_fator():
    emb = {BL: 10, CX: 30, PQ: 300}
    p = calcular_precos(1, PQ, emb, 600.0, 50.0)
    assert p.quantidade_canonica == 300
    assert p.custo_unitario == pytest.approx(2.0)
    assert p.preco_unidade == pytest.approx(3.0)
    for nivel, fator in emb.items():
        assert p.precos_sugeridos[nivel] == pytest.approx(p.preco_unidade * fator)


@pytest.mark.parametrize("margem,esperado", [(0, 4.0), (-10, 3.6), (100, 8.0)])
def test_margem_zero_e_negativa_sao_aceitas(margem, esperado):
    p = calcular_precos(5, U, {}, 20.0, margem)
    assert p.preco_unidade == pytest.approx(esperado)


def test_custo_zero_gera_precos_zero():
    p = calcular_precos(3, U, None, 0, 30)
    assert p.custo_unitario == 0
    assert p.preco_unidade == 0


def test_quantidade_zero_rejeitada():
    with pytest.raises(QuantidadeInvalida):
        calcular_precos(0, U, {}, 10.0, 30)


def test_quantidade_fracionada_rejeitada():
    with pytest.raises(QuantidadeInvalida):
        quantidade_canonica(1.5, U, {})


def test_nivel_sem_fator_rejeitado():
    with pytest.raises(NivelEmbalagemIndefinido):
        calcular_precos(1, CX, {BL: 10}, 10.0, 30)


@pytest.mark.parametrize("fator", [None, 0, -5])
def test_fator_ausente_ou_nao_positivo_nao_se_aplica(fator):
    assert embalagens_definidas({CX: fator, BL: 10}) == {BL: 10}
    with pytest.raises(NivelEmbalagemIndefinido):
        quantidade_canonica(1, CX, {CX: fator})


def test_campos_obrigatorios():
    with pytest.raises(CampoObrigatorioAusente):
        calcular_precos(1, U, {}, 10.0, None)
    with pytest.raises(CampoObrigatorioAusente):
        calcular_precos(1, U, {}, None, 30)
    with pytest.raises(CampoObrigatorioAusente):
        calcular_precos(None, U, {}, 10.0, 30)


def test_custo_negativo_rejeitado():
    with pytest.raises(ValorInvalido):
        calcular_precos(1, U, {}, -1.0, 30)


def test_preco_sugerido():
    assert preco_sugerido(10, 30) == pytest.approx(13.0)


# -----------------------
# FormularioItem
# -----------------------

def _produto(**kw):
    base = dict(id=1, nome="Paracetamol 500mg", embalagens={BL: 10, CX: 100})
    base.update(kw)
    return Produto(**base)


def test_formulario_niveis_disponiveis_e_ajuste_de_fator():
    f = FormularioItem(produto=_produto(), margem=30)
    assert f.niveis_disponiveis() == [U, BL, CX]
    f.ajustar_embalagem(PQ, 1000)
    assert f.niveis_disponiveis() == [U, BL, CX, PQ]
    f.ajustar_embalagem(BL, 0)
    assert BL not in f.embalagens()
    with pytest.raises(ValorInvalido):
        f.ajustar_embalagem(U, 2)


def test_preco_manual_sobrevive_ao_recalculo():
    f = FormularioItem(produto=_produto(), margem=25, quantidade=1, nivel=CX, custo_total=100.0)
    f.definir_preco(CX, 150.0)
    assert f.precos_finais()[CX] == 150.0

    f.margem = 50
    f.custo_total = 200.0
    finais = f.precos_finais()
    assert finais[CX] == 150.0
    assert finais[U] == pytest.approx(3.0)
    assert finais[BL] == pytest.approx(30.0)

    f.limpar_preco(CX)
    assert f.precos_finais()[CX] == pytest.approx(300.0)


def test_preco_manual_negativo_rejeitado():
    f = FormularioItem(produto=_produto(), margem=25)
    with pytest.raises(ValorInvalido):
        f.definir_preco(U, -1)


def test_preco_manual_de_nivel_inexistente_ignorado():
    f = FormularioItem(produto=_produto(embalagens={}), margem=25, quantidade=2, custo_total=10.0)
    f.definir_preco(PQ, 99.0)
    assert PQ not in f.precos_finais()
