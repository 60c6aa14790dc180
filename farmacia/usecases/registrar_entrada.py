# farmacia/usecases/registrar_entrada.py
"""
UC: Registrar RECEBIMENTO de mercadorias (nota fiscal com várias linhas).

Fluxo:
1) As linhas são preparadas no `CarrinhoRecebimento` (validação e preços).
2) `TransacaoRecebimento.executar` grava a nota:
   a) para cada item, atualiza o produto (estoque += quantidade canônica,
      custo, lote, validade, preços e embalagens);
   b) insere uma `entrada` por item, todas com a mesma nota e fornecedor.

Obs.:
- O banco não tem transação entre registros diferentes. A gravação é uma
  saga: o resultado de cada passo é registrado e, com `compensar=True`,
  os produtos já atualizados voltam ao estado anterior na primeira falha.
- O resultado nunca é sucesso se algum passo falhou.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from farmacia.config import DB_PATH, DEFAULTS
from farmacia.adapters.parsers import (
    parse_data,
    parse_decimal,
    parse_inteiro,
    parse_nivel_embalagem,
)
from farmacia.adapters.planilhas import load_recebimento_from_xlsx
from farmacia.domain.carrinho import CarrinhoRecebimento
from farmacia.domain.erros import (
    CampoObrigatorioAusente,
    ErroPersistencia,
    ErroValidacao,
    FalhaCommitParcial,
    FalhaPersistencia,
    ValorInvalido,
)
from farmacia.domain.models import (
    Contexto,
    Entrada,
    ItemRecebimento,
    NivelEmbalagem,
    NotaEntrada,
    Produto,
)
from farmacia.domain.precificacao import FormularioItem
from farmacia.infra.migrations import apply_migrations
from farmacia.infra.views import create_views
from farmacia.infra.repositories import (
    EntradaRepo,
    FornecedorRepo,
    ParamsRepo,
    ProdutoRepo,
)
from farmacia.infra.logger import (
    log_transaction, log_entrada, log_database_operation,
    log_system_event, log_file_operation,
)

# Status de cada passo da saga
PENDENTE = "pendente"
CONFIRMADO = "confirmado"
FALHOU = "falhou"
COMPENSADO = "compensado"
COMPENSACAO_FALHOU = "compensacao_falhou"

# Passos que deixam escrita gravada no banco
_APLICADOS = (CONFIRMADO, COMPENSACAO_FALHOU)


@dataclass
class StatusItem:
    indice: int
    produto_id: Optional[int]
    produto: str
    quantidade: int
    status: str = PENDENTE
    erro: Optional[str] = None


@dataclass
class ResultadoRecebimento:
    nota_fiscal: str
    fornecedor: str
    data_entrada: str
    itens: List[StatusItem] = field(default_factory=list)
    status_movimentos: str = PENDENTE
    erro_movimentos: Optional[str] = None
    erro: Optional[ErroPersistencia] = None

    @property
    def sucesso(self) -> bool:
        return (
            self.erro is None
            and self.status_movimentos == CONFIRMADO
            and all(i.status == CONFIRMADO for i in self.itens)
        )

    @property
    def aplicados(self) -> List[StatusItem]:
        return [i for i in self.itens if i.status in _APLICADOS]

    @property
    def parcial(self) -> bool:
        return isinstance(self.erro, FalhaCommitParcial)

    def indices_gravados(self) -> List[int]:
        """Índices dos itens com alguma escrita que ficou no banco.

        Com as movimentações gravadas, todos os itens da nota já constam
        no histórico e nenhum pode ser reenviado.
        """
        if self.status_movimentos == CONFIRMADO:
            return [i.indice for i in self.itens]
        return [i.indice for i in self.aplicados]

    def levantar(self) -> None:
        if self.erro is not None:
            raise self.erro

    def as_dict(self) -> Dict[str, Any]:
        return {
            "nota_fiscal": self.nota_fiscal,
            "fornecedor": self.fornecedor,
            "data_entrada": self.data_entrada,
            "sucesso": self.sucesso,
            "movimentos": self.status_movimentos,
            "itens": [asdict(i) for i in self.itens],
            "erro": str(self.erro) if self.erro else None,
        }


class TransacaoRecebimento:
    """Grava uma nota de entrada como uma sequência de passos independentes."""

    def __init__(self, produto_repo: ProdutoRepo, entrada_repo: EntradaRepo, compensar: bool = True):
        self.produto_repo = produto_repo
        self.entrada_repo = entrada_repo
        self.compensar = compensar

    # --------- passos ---------

    def _atualizar_produto(self, item: ItemRecebimento) -> Produto:
        """Aplica o item ao produto e devolve o estado anterior (para compensação)."""
        atual = self.produto_repo.get(item.produto.id)
        if atual is None:
            raise LookupError(f"Produto {item.produto.id} não encontrado")
        campos = {
            "estoque": int(atual.estoque) + int(item.quantidade_canonica),
            "custo_unitario": item.custo_unitario,
            "lote": item.lote,
            "data_validade": item.data_validade,
            "preco_unidade": item.preco_unidade,
        }
        embalagens = {n: (u, item.precos.get(n)) for n, u in item.embalagens.items()}
        self.produto_repo.atualizar(atual.id, campos, embalagens)
        return atual

    def _restaurar_produto(self, anterior: Produto) -> None:
        campos = {
            "estoque": anterior.estoque,
            "custo_unitario": anterior.custo_unitario,
            "lote": anterior.lote,
            "data_validade": anterior.data_validade,
            "preco_unidade": anterior.preco_unidade,
        }
        self.produto_repo.atualizar(anterior.id, campos, ProdutoRepo.embalagens_de(anterior),
                                    substituir_embalagens=True)

    @staticmethod
    def _movimento(item: ItemRecebimento, nota: NotaEntrada, data_entrada: str, ctx: Contexto) -> Entrada:
        return Entrada(
            nota_fiscal=nota.numero.strip(),
            fornecedor=nota.fornecedor.nome,
            produto_id=item.produto.id,
            produto=item.produto.nome,
            quantidade=item.quantidade_canonica,
            custo_unitario=item.custo_unitario,
            margem=item.margem,
            data_entrada=data_entrada,
            data_validade=item.data_validade,
            lote=item.lote,
            usuario=ctx.usuario,
            empresa_id=ctx.empresa_id,
            sede_id=ctx.sede_id,
        )

    # --------- execução ---------

    def executar(self, itens: List[ItemRecebimento], nota: NotaEntrada, ctx: Contexto) -> ResultadoRecebimento:
        data_entrada = nota.data_entrada or date.today().isoformat()
        resultado = ResultadoRecebimento(
            nota_fiscal=nota.numero.strip(),
            fornecedor=nota.fornecedor.nome,
            data_entrada=data_entrada,
            itens=[
                StatusItem(i, it.produto.id, it.produto.nome, it.quantidade_canonica)
                for i, it in enumerate(itens)
            ],
        )
        dados_log = {"nota_fiscal": resultado.nota_fiscal, "fornecedor": resultado.fornecedor,
                     "itens": len(itens), "usuario": ctx.usuario}
        log_system_event("recebimento_start", dados_log)

        anteriores: List[Tuple[StatusItem, Produto]] = []
        houve_falha = False

        # a) produtos
        for st, item in zip(resultado.itens, itens):
            try:
                anterior = self._atualizar_produto(item)
            except Exception as e:
                st.status, st.erro = FALHOU, str(e)
                houve_falha = True
                log_entrada("commit_failed", item.produto.nome, item.quantidade_canonica, item.lote, error=str(e))
                if self.compensar:
                    break
                continue
            st.status = CONFIRMADO
            anteriores.append((st, anterior))
            log_database_operation("produto", "UPDATE", 1, produto_id=item.produto.id,
                                   estoque_anterior=anterior.estoque)
            log_entrada("commit", item.produto.nome, item.quantidade_canonica, item.lote,
                        nota_fiscal=resultado.nota_fiscal)

        # b) movimentações (um único lote)
        if not houve_falha or not self.compensar:
            try:
                self.entrada_repo.insert_many([self._movimento(it, nota, data_entrada, ctx) for it in itens])
                resultado.status_movimentos = CONFIRMADO
                log_database_operation("entrada", "INSERT_MANY", len(itens), nota_fiscal=resultado.nota_fiscal)
            except Exception as e:
                resultado.status_movimentos = FALHOU
                resultado.erro_movimentos = str(e)
                houve_falha = True

        if not houve_falha:
            log_transaction("recebimento", dados_log, result={"unidades": sum(i.quantidade for i in resultado.itens)})
            log_system_event("recebimento_success", dados_log)
            return resultado

        if self.compensar:
            for st, anterior in reversed(anteriores):
                try:
                    self._restaurar_produto(anterior)
                    st.status = COMPENSADO
                    log_entrada("compensate", st.produto, st.quantidade, nota_fiscal=resultado.nota_fiscal)
                except Exception as e:
                    st.status, st.erro = COMPENSACAO_FALHOU, str(e)
                    log_entrada("compensate_failed", st.produto, st.quantidade, error=str(e))

        resultado.erro = self._erro(resultado)
        log_transaction("recebimento", dados_log, error=str(resultado.erro))
        log_system_event("recebimento_error", {**dados_log, "error": str(resultado.erro)}, level="error")
        return resultado

    @staticmethod
    def _erro(resultado: ResultadoRecebimento) -> ErroPersistencia:
        detalhes = [asdict(i) for i in resultado.itens]
        detalhes.append({"passo": "entradas", "status": resultado.status_movimentos,
                         "erro": resultado.erro_movimentos})
        causas = [i.erro for i in resultado.itens if i.status == FALHOU]
        if resultado.status_movimentos == FALHOU:
            causas.append(resultado.erro_movimentos)
        causa = "; ".join(c for c in causas if c)
        aplicados = resultado.aplicados
        if aplicados or resultado.status_movimentos == CONFIRMADO:
            nomes = ", ".join(i.produto for i in aplicados) or "-"
            return FalhaCommitParcial(
                f"Nota {resultado.nota_fiscal} gravada parcialmente ({causa}). "
                f"Produtos alterados: {nomes}; entradas: {resultado.status_movimentos}. "
                "Conciliar antes de tentar novamente.",
                detalhes=detalhes,
            )
        return FalhaPersistencia(f"Nota {resultado.nota_fiscal} não foi gravada: {causa}", detalhes=detalhes)


# -------------------------
# entradas de alto nível
# -------------------------

def _preparar_db(db_path: str) -> None:
    apply_migrations(db_path)
    create_views(db_path)


def novo_carrinho(db_path: str = DB_PATH) -> CarrinhoRecebimento:
    """Carrinho com a margem padrão vigente (params > DEFAULTS)."""
    margem = ParamsRepo(db_path).get_float("margem_padrao", DEFAULTS.margem_padrao)
    return CarrinhoRecebimento(margem_padrao=margem)


def run_recebimento(
    carrinho: CarrinhoRecebimento,
    nota: NotaEntrada,
    ctx: Contexto,
    db_path: str = DB_PATH,
    compensar: bool = True,
) -> ResultadoRecebimento:
    """Confirma o carrinho contra o banco `db_path`."""
    transacao = TransacaoRecebimento(ProdutoRepo(db_path), EntradaRepo(db_path), compensar=compensar)
    return carrinho.confirmar(nota, transacao, ctx)


def _resolver_produto(row: Dict[str, Any], repo: ProdutoRepo, ctx: Contexto) -> Produto:
    codigo, nome = row.get("codigo"), row.get("produto")
    if codigo:
        p = repo.get_by_codigo(codigo, ctx)
        if p:
            return p
    if nome:
        for p in repo.buscar(nome, ctx):
            if p.nome.strip().lower() == nome.strip().lower():
                return p
    if not codigo and not nome:
        raise CampoObrigatorioAusente("produto")
    raise ValorInvalido("produto", codigo or nome)


_COLUNAS_EMBALAGEM = {
    NivelEmbalagem.BLISTER: ("blister_u", "preco_blister"),
    NivelEmbalagem.CAIXA: ("caixa_u", "preco_caixa"),
    NivelEmbalagem.PACOTE: ("pacote_u", "preco_pacote"),
}


def preencher_formulario(form: FormularioItem, row: Dict[str, Any]) -> FormularioItem:
    """Copia os valores de uma linha (texto) para o formulário, convertendo tipos."""
    quantidade = parse_inteiro(row.get("quantidade"))
    if quantidade is None:
        raise CampoObrigatorioAusente("quantidade")
    custo = parse_decimal(row.get("custo_total"))
    if custo is None:
        raise CampoObrigatorioAusente("custo_total")
    form.quantidade = quantidade
    form.custo_total = custo
    form.nivel = parse_nivel_embalagem(row.get("unidade_compra"))
    margem = parse_decimal(row.get("margem"))
    if margem is not None:
        form.margem = margem
    form.lote = row.get("lote")
    if row.get("data_validade"):
        form.data_validade = parse_data(row.get("data_validade"))
    for nivel, (col_u, col_pv) in _COLUNAS_EMBALAGEM.items():
        unidades = parse_inteiro(row.get(col_u))
        if unidades is not None:
            form.ajustar_embalagem(nivel, unidades)
        preco = parse_decimal(row.get(col_pv))
        if preco is not None:
            form.definir_preco(nivel, preco)
    preco_unidade = parse_decimal(row.get("preco_unidade"))
    if preco_unidade is not None:
        form.definir_preco(NivelEmbalagem.UNIDADE, preco_unidade)
    return form


def run_entrada_lote(
    path: str,
    numero_nota: str,
    fornecedor_id: int,
    ctx: Contexto,
    db_path: str = DB_PATH,
    data_entrada: Optional[str] = None,
    compensar: bool = True,
) -> Dict[str, Any]:
    """Lê um XLSX de nota de entrada, prepara todas as linhas e grava a nota.

    A nota só é gravada se todas as linhas forem válidas. Os erros de
    validação são devolvidos por linha da planilha (a linha 1 é o cabeçalho).
    Falhas de persistência são propagadas (`ErroPersistencia`).
    """
    log_system_event("entrada_lote_start", {"file_path": path, "nota_fiscal": numero_nota})
    log_file_operation("import", path)
    _preparar_db(db_path)

    fornecedor = FornecedorRepo(db_path).get(int(fornecedor_id)) if fornecedor_id is not None else None
    if fornecedor is None:
        raise CampoObrigatorioAusente("fornecedor")
    nota = NotaEntrada(numero=numero_nota, fornecedor=fornecedor, data_entrada=parse_data(data_entrada))

    rows = load_recebimento_from_xlsx(path)
    log_file_operation("import", path, rows_processed=len(rows))

    prod_repo = ProdutoRepo(db_path)
    entrada_repo = EntradaRepo(db_path)
    carrinho = novo_carrinho(db_path)
    erros: List[Dict[str, Any]] = []

    for linha, row in enumerate(rows, start=2):
        try:
            produto = _resolver_produto(row, prod_repo, ctx)
            form = carrinho.selecionar_produto(produto)
            preencher_formulario(form, row)
            if not form.data_validade:
                carrinho.preencher_validade_por_lote(entrada_repo, ctx)
            item = carrinho.adicionar_item()
            log_entrada("stage", produto.nome, item.quantidade_canonica, item.lote, linha=linha)
        except ErroValidacao as e:
            carrinho.formulario = None
            erros.append({"linha": linha, "mensagem": str(e)})

    info: Dict[str, Any] = {
        "tipo": "Entradas",
        "arquivo": path,
        "nota_fiscal": numero_nota,
        "total": len(rows),
        "sucessos": len(carrinho),
        "erros": erros,
        "gravado": False,
    }
    if erros or not rows:
        log_transaction("entrada_lote", {"file": path, "rows_count": len(rows)},
                        error=f"{len(erros)} linha(s) inválida(s)" if erros else "planilha vazia")
        return info

    valor_total = carrinho.total()
    try:
        resultado = run_recebimento(carrinho, nota, ctx, db_path=db_path, compensar=compensar)
        resultado.levantar()
    except ErroPersistencia as e:
        log_system_event("entrada_lote_error", {"file_path": path, "error": str(e)}, level="error")
        raise

    info.update(gravado=True, unidades=sum(i.quantidade for i in resultado.itens),
                valor_total=round(valor_total, 2))
    log_transaction("entrada_lote", {"file": path, "rows_count": len(rows)}, result=info)
    log_system_event("entrada_lote_success", {"file_path": path, "rows_inserted": len(rows)})
    return info


def consultar_validade_lote(produto_nome: str, lote: str, ctx: Contexto, db_path: str = DB_PATH) -> Optional[str]:
    """Validade registrada na entrada mais recente de (produto, lote)."""
    apply_migrations(db_path)
    return EntradaRepo(db_path).ultima_validade(produto_nome, lote, ctx)
