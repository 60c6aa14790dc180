# farmacia/usecases/verificar_estoque.py
"""
Caso de uso: verificar estoque e sugerir reposição.

Fluxo:
1) Aplica migrações e cria views.
2) Lê parâmetros (teto e piso da reposição proativa).
3) Varre os produtos ativos da empresa/sede:
   - CRITICO: estoque <= estoque mínimo (mínimo > 0);
   - se não houver nenhum crítico, PROATIVO: 0 < estoque < teto.
4) Agrupa os candidatos por laboratório e calcula a quantidade sugerida.

Observações:
- Produtos sem laboratório vão para o grupo "Sem Laboratório".
- A sugestão é editável (seleção e quantidade por produto) antes de virar
  ordem de compra em `gerar_pedidos`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from farmacia.config import DB_PATH, DEFAULTS
from farmacia.domain.erros import ValorInvalido
from farmacia.domain.models import Contexto, Fornecedor, Produto
from farmacia.domain.policies import (
    eh_critico,
    eh_proativo,
    qtd_sugerida_critica,
    qtd_sugerida_proativa,
)
from farmacia.infra.migrations import apply_migrations
from farmacia.infra.views import create_views
from farmacia.infra.repositories import FornecedorRepo, ParamsRepo, ProdutoRepo
from farmacia.infra.logger import log_system_event, log_database_operation


class TipoSugestao(str, Enum):
    CRITICO = "CRITICO"
    PROATIVO = "PROATIVO"
    NENHUM = "NENHUM"


@dataclass
class CandidatoReposicao:
    produto: Produto
    quantidade: int
    selecionado: bool = True


@dataclass
class SugestaoReposicao:
    tipo: TipoSugestao
    grupos: Dict[str, List[CandidatoReposicao]] = field(default_factory=dict)
    fornecedores: List[Fornecedor] = field(default_factory=list)

    def candidatos(self) -> List[CandidatoReposicao]:
        return [c for itens in self.grupos.values() for c in itens]

    def _candidato(self, produto_id: int) -> CandidatoReposicao:
        for c in self.candidatos():
            if c.produto.id == produto_id:
                return c
        raise KeyError(produto_id)

    def selecionar(self, produto_id: int, selecionado: bool = True) -> None:
        self._candidato(produto_id).selecionado = selecionado

    def ajustar_quantidade(self, produto_id: int, quantidade: int) -> None:
        if quantidade is None or int(quantidade) < 0:
            raise ValorInvalido("quantidade", quantidade)
        self._candidato(produto_id).quantidade = int(quantidade)

    def as_rows(self) -> List[Dict]:
        """Linhas planas para exibição (grupo, produto, estoque, mínimo, sugerido)."""
        return [
            {
                "grupo": grupo,
                "produto_id": c.produto.id,
                "codigo": c.produto.codigo,
                "produto": c.produto.nome,
                "estoque": c.produto.estoque,
                "estoque_min": c.produto.estoque_min,
                "quantidade": c.quantidade,
                "selecionado": c.selecionado,
            }
            for grupo, itens in self.grupos.items()
            for c in itens
        ]


def _grupo(produto: Produto, sem_laboratorio: str) -> str:
    lab = (produto.laboratorio or "").strip()
    return lab or sem_laboratorio


def sugerir_reposicao(
    produtos: Iterable[Produto],
    fornecedores: Optional[List[Fornecedor]] = None,
    teto: int = DEFAULTS.teto_proativo,
    piso: int = DEFAULTS.piso_proativo,
    grupo_sem_laboratorio: str = DEFAULTS.grupo_sem_laboratorio,
) -> SugestaoReposicao:
    """Classifica os produtos e monta a sugestão agrupada por laboratório.

    Função pura: não acessa o banco.
    """
    ativos = [p for p in produtos if p.ativo]

    criticos = [p for p in ativos if eh_critico(p.estoque, p.estoque_min)]
    if criticos:
        tipo = TipoSugestao.CRITICO
        candidatos = [CandidatoReposicao(p, qtd_sugerida_critica(p.estoque, p.estoque_min)) for p in criticos]
    else:
        proativos = [p for p in ativos if eh_proativo(p.estoque, teto)]
        tipo = TipoSugestao.PROATIVO if proativos else TipoSugestao.NENHUM
        candidatos = [CandidatoReposicao(p, qtd_sugerida_proativa(p.estoque, teto, piso)) for p in proativos]

    grupos: Dict[str, List[CandidatoReposicao]] = {}
    for c in candidatos:
        grupos.setdefault(_grupo(c.produto, grupo_sem_laboratorio), []).append(c)
    for itens in grupos.values():
        itens.sort(key=lambda c: c.produto.nome.lower())

    return SugestaoReposicao(tipo=tipo, grupos=dict(sorted(grupos.items())),
                             fornecedores=list(fornecedores or []))


def run_verificar(ctx: Contexto, db_path: str = DB_PATH) -> SugestaoReposicao:
    apply_migrations(db_path)
    create_views(db_path)

    params_repo = ParamsRepo(db_path)
    teto = int(params_repo.get_float("teto_proativo", DEFAULTS.teto_proativo))
    piso = int(params_repo.get_float("piso_proativo", DEFAULTS.piso_proativo))

    produtos = ProdutoRepo(db_path).get_all(ctx)
    log_database_operation("produto", "SELECT_ALL", len(produtos), empresa_id=ctx.empresa_id, sede_id=ctx.sede_id)
    fornecedores = FornecedorRepo(db_path).get_all(ctx)

    sugestao = sugerir_reposicao(produtos, fornecedores, teto=teto, piso=piso,
                                 grupo_sem_laboratorio=DEFAULTS.grupo_sem_laboratorio)
    log_system_event("verificar_estoque", {
        "tipo": sugestao.tipo.value,
        "grupos": len(sugestao.grupos),
        "candidatos": len(sugestao.candidatos()),
        "produtos_analisados": len(produtos),
    })
    return sugestao
