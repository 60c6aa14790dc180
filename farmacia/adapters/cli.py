# farmacia/adapters/cli.py
"""
CLI do recebimento e reposição (Typer).

Comandos principais:
- migrate                          -> aplica migrações e cria views
- params set/get/show              -> gerencia parâmetros globais
- produtos importar/listar/adicionar
- fornecedores adicionar/listar
- entrada-lote <xlsx>              -> grava uma nota de entrada a partir de um XLSX
- lote-validade                    -> validade já registrada para (produto, lote)
- verificar                        -> sugestão de reposição agrupada por laboratório
- pedidos gerar/listar             -> ordens de compra em rascunho
- rel estoque-baixo/vencimentos/entradas/notas
- tui                              -> sessão interativa

Códigos de saída: 1 para erro de validação, 2 para erro de persistência.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich import box

from farmacia.config import DB_PATH, DEFAULTS, PARAM_KEYS
from farmacia.domain.erros import ErroEstado, ErroPersistencia, ErroValidacao
from farmacia.domain.models import Contexto, Fornecedor, NivelEmbalagem, Produto
from farmacia.infra.migrations import apply_migrations
from farmacia.infra.views import create_views
from farmacia.infra.repositories import FornecedorRepo, ParamsRepo, ProdutoRepo
from farmacia.usecases.cadastros import cadastrar_fornecedor, cadastrar_produto, importar_produtos
from farmacia.usecases.registrar_entrada import consultar_validade_lote, run_entrada_lote
from farmacia.usecases.verificar_estoque import SugestaoReposicao, run_verificar
from farmacia.usecases.gerar_pedidos import run_gerar_pedidos
from farmacia.usecases.relatorios import (
    relatorio_entradas,
    relatorio_estoque_baixo,
    relatorio_notas,
    relatorio_ordens,
    relatorio_produtos_a_vencer,
)


app = typer.Typer(help="Farmácia - recebimento de mercadorias e reposição de estoque")
console = Console()


@app.callback()
def main_callback(
    ctx: typer.Context,
    empresa: int = typer.Option(DEFAULTS.empresa_id, "--empresa", help="ID da empresa"),
    sede: int = typer.Option(DEFAULTS.sede_id, "--sede", help="ID da sede"),
    usuario: str = typer.Option(DEFAULTS.usuario, "--usuario", help="Operador da sessão"),
):
    """Define empresa, sede e operador usados por todos os comandos."""
    ctx.obj = Contexto(empresa_id=empresa, sede_id=sede, usuario=usuario)


# -----------------------
# util
# -----------------------

def _contexto(ctx: typer.Context) -> Contexto:
    return ctx.obj or Contexto(DEFAULTS.empresa_id, DEFAULTS.sede_id, DEFAULTS.usuario)


def _print_json(obj) -> None:
    typer.echo(json.dumps(obj, ensure_ascii=False, indent=2))


def _fmt(val: Any) -> str:
    if val is None:
        return ""
    if isinstance(val, float):
        return f"{val:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    return str(val)


def _falhar(e: Exception) -> None:
    """Mostra o erro e encerra com o código correspondente."""
    if isinstance(e, ErroPersistencia):
        console.print(Panel(str(e), title="Erro de persistência", border_style="red"))
        for d in e.detalhes:
            console.print(f"[dim]{d}[/dim]")
        raise typer.Exit(code=2)
    console.print(Panel(str(e), title="Erro de validação", border_style="yellow"))
    raise typer.Exit(code=1)


def _display_report(report, title: str) -> None:
    """Exibe o retorno ``(colunas, linhas, mensagem)`` dos relatórios."""
    columns, rows, msg = report
    if not rows:
        console.print(Panel(msg or "Nenhum dado encontrado", title=title, border_style="yellow"))
        return
    table = Table(title=title, box=box.ROUNDED)
    for col in columns:
        justify = "right" if col in ("Estoque", "Mínimo", "Qtd (un)", "Itens", "Unidades", "Dias",
                                      "Valor total", "Valor estimado", "Custo un.") else "left"
        table.add_column(col, justify=justify, overflow="fold")
    for row in rows:
        valores = [_fmt(v) for v in row]
        if "Status" in columns:
            i = columns.index("Status")
            cor = {"CRITICO": "bold red", "ALERTA": "bold yellow", "OK": "bold green"}.get(row[i])
            if cor:
                valores[i] = f"[{cor}]{row[i]}[/]"
        table.add_row(*valores)
    console.print(table)


def _display_lote(data: Dict[str, Any], title: str) -> None:
    panel_content = [
        f"Total de linhas: {data['total']}",
        f"Processadas com sucesso: {data.get('sucessos', data.get('inseridos', 0))}",
    ]
    if "atualizados" in data:
        panel_content.append(f"Atualizadas: {data['atualizados']}")
    if "gravado" in data:
        panel_content.append("Nota gravada" if data["gravado"] else "Nota NÃO gravada")
    if data.get("valor_total") is not None:
        panel_content.append(f"Valor total: {_fmt(float(data['valor_total']))}")
    if data.get("erros"):
        panel_content.append(f"Erros: {len(data['erros'])}")
    console.print(Panel("\n".join(panel_content), title=title))

    if data.get("erros"):
        erro_table = Table(title="Erros Encontrados")
        erro_table.add_column("Linha")
        erro_table.add_column("Erro")
        for erro in data["erros"]:
            erro_table.add_row(str(erro.get("linha", "?")), erro.get("mensagem", "Erro desconhecido"))
        console.print(erro_table)


def _display_sugestao(sugestao: SugestaoReposicao) -> None:
    if not sugestao.grupos:
        console.print(Panel("Nenhum produto precisa de reposição.", title="Reposição", border_style="green"))
        return
    cor = "red" if sugestao.tipo.value == "CRITICO" else "yellow"
    console.print(f"Tipo de reposição: [bold {cor}]{sugestao.tipo.value}[/]")
    for grupo, itens in sugestao.grupos.items():
        table = Table(title=grupo, box=box.ROUNDED)
        table.add_column("ID", justify="right")
        table.add_column("Código")
        table.add_column("Produto")
        table.add_column("Estoque", justify="right")
        table.add_column("Mínimo", justify="right")
        table.add_column("Sugerido", justify="right")
        for c in itens:
            table.add_row(str(c.produto.id), c.produto.codigo or "", c.produto.nome,
                          str(c.produto.estoque), str(c.produto.estoque_min), str(c.quantidade))
        console.print(table)


def _pares(valores: List[str], opcao: str) -> Dict[str, str]:
    """Converte ``["A=1", "B=2"]`` em ``{"A": "1", "B": "2"}``."""
    out: Dict[str, str] = {}
    for v in valores or []:
        if "=" not in v:
            raise typer.BadParameter(f"Use CHAVE=VALOR em {opcao}: {v!r}")
        k, val = v.rsplit("=", 1)
        out[k.strip()] = val.strip()
    return out


# -----------------------
# comandos de infra
# -----------------------

@app.command("migrate")
def cmd_migrate(db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite")):
    """Aplica migrações e recria as views auxiliares."""
    apply_migrations(db_path)
    create_views(db_path)
    typer.echo(f">> Migrações aplicadas e views criadas em: {db_path}")


params_app = typer.Typer(help="Gerenciar parâmetros globais (margem e reposição).")
app.add_typer(params_app, name="params")


@params_app.command("set")
def cmd_params_set(
    margem_padrao: Optional[float] = typer.Option(None, help="Margem padrão % (ex.: 30)"),
    teto_proativo: Optional[int] = typer.Option(None, help="Estoque abaixo disso entra na reposição proativa"),
    piso_proativo: Optional[int] = typer.Option(None, help="Quantidade mínima sugerida na reposição proativa"),
    dias_a_vencer: Optional[int] = typer.Option(None, help="Janela padrão do relatório de vencimentos"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Define parâmetros globais (apenas os informados são alterados)."""
    apply_migrations(db_path)
    valores = {
        "margem_padrao": margem_padrao,
        "teto_proativo": teto_proativo,
        "piso_proativo": piso_proativo,
        "dias_a_vencer": dias_a_vencer,
    }
    items = [(k, str(v)) for k, v in valores.items() if v is not None]
    if not items:
        typer.echo("Nada a alterar. Informe pelo menos um parâmetro.")
        raise typer.Exit(code=1)
    ParamsRepo(db_path).set_many(items)
    typer.echo(">> Parâmetros atualizados.")


@params_app.command("get")
def cmd_params_get(
    chave: str = typer.Argument(..., help="Ex.: " + " | ".join(PARAM_KEYS)),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Mostra um parâmetro específico."""
    apply_migrations(db_path)
    val = ParamsRepo(db_path).get(chave)
    typer.echo("(None)" if val is None else val)


@params_app.command("show")
def cmd_params_show(db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite")):
    """Exibe os parâmetros efetivos (com fallback para defaults) em JSON."""
    apply_migrations(db_path)
    repo = ParamsRepo(db_path)
    out: Dict[str, Any] = {k: repo.get(k, str(getattr(DEFAULTS, k))) for k in PARAM_KEYS}
    out["_defaults"] = {k: getattr(DEFAULTS, k) for k in PARAM_KEYS}
    out["_db"] = db_path
    _print_json(out)


# -----------------------
# cadastros
# -----------------------

produtos_app = typer.Typer(help="Cadastro de produtos")
app.add_typer(produtos_app, name="produtos")


@produtos_app.command("importar")
def cmd_produtos_importar(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Caminho do XLSX de catálogo"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Importa (ou atualiza por código) produtos a partir de um XLSX."""
    info = importar_produtos(path, _contexto(ctx), db_path=db_path)
    _display_lote(info, title="Importação de Produtos")


@produtos_app.command("listar")
def cmd_produtos_listar(
    ctx: typer.Context,
    busca: Optional[str] = typer.Option(None, "--busca", help="Filtra por nome ou código"),
    inativos: bool = typer.Option(False, "--inativos", help="Inclui produtos inativos"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Lista os produtos da empresa/sede."""
    apply_migrations(db_path)
    repo = ProdutoRepo(db_path)
    c = _contexto(ctx)
    produtos = repo.buscar(busca, c, limite=1000) if busca else repo.get_all(c, apenas_ativos=not inativos)
    columns = ["ID", "Código", "Produto", "Laboratório", "Estoque", "Mínimo", "Validade"]
    rows = [
        [p.id, p.codigo or "", p.nome, p.laboratorio or "", p.estoque, p.estoque_min, p.data_validade or ""]
        for p in produtos
    ]
    _display_report((columns, rows, "Nenhum produto cadastrado."), title="Produtos")


@produtos_app.command("adicionar")
def cmd_produtos_adicionar(
    ctx: typer.Context,
    nome: str = typer.Option(..., help="Nome do produto"),
    codigo: Optional[str] = typer.Option(None, help="Código / código de barras"),
    laboratorio: Optional[str] = typer.Option(None, help="Laboratório"),
    estoque: int = typer.Option(0, help="Estoque inicial (unidades)"),
    estoque_min: int = typer.Option(0, "--estoque-min", help="Estoque mínimo (0 = sem mínimo)"),
    custo: Optional[float] = typer.Option(None, help="Custo unitário"),
    preco: Optional[float] = typer.Option(None, help="Preço de venda da unidade"),
    blister_u: Optional[int] = typer.Option(None, "--blister-u", help="Unidades por blister"),
    caixa_u: Optional[int] = typer.Option(None, "--caixa-u", help="Unidades por caixa"),
    pacote_u: Optional[int] = typer.Option(None, "--pacote-u", help="Unidades por pacote"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Cadastra um produto."""
    embalagens = {
        n: u for n, u in (
            (NivelEmbalagem.BLISTER, blister_u),
            (NivelEmbalagem.CAIXA, caixa_u),
            (NivelEmbalagem.PACOTE, pacote_u),
        ) if u
    }
    produto = Produto(id=None, nome=nome, codigo=codigo, laboratorio=laboratorio, estoque=estoque,
                      estoque_min=estoque_min, custo_unitario=custo, preco_unidade=preco,
                      embalagens=embalagens)
    try:
        produto_id = cadastrar_produto(produto, _contexto(ctx), db_path=db_path)
    except ErroValidacao as e:
        _falhar(e)
    typer.echo(f">> Produto {produto_id} cadastrado: {nome}")


fornecedores_app = typer.Typer(help="Cadastro de fornecedores")
app.add_typer(fornecedores_app, name="fornecedores")


@fornecedores_app.command("adicionar")
def cmd_fornecedores_adicionar(
    ctx: typer.Context,
    nome: str = typer.Option(..., help="Razão social"),
    ruc: Optional[str] = typer.Option(None, help="Documento fiscal (RUC/CNPJ)"),
    contato: Optional[str] = typer.Option(None, help="Pessoa de contato"),
    telefone: Optional[str] = typer.Option(None),
    email: Optional[str] = typer.Option(None),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Cadastra um fornecedor."""
    f = Fornecedor(id=None, nome=nome, ruc=ruc, contato=contato, telefone=telefone, email=email)
    try:
        fornecedor_id = cadastrar_fornecedor(f, _contexto(ctx), db_path=db_path)
    except ErroValidacao as e:
        _falhar(e)
    typer.echo(f">> Fornecedor {fornecedor_id} cadastrado: {nome}")


@fornecedores_app.command("listar")
def cmd_fornecedores_listar(
    ctx: typer.Context,
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Lista os fornecedores da empresa/sede."""
    apply_migrations(db_path)
    fornecedores = FornecedorRepo(db_path).get_all(_contexto(ctx))
    columns = ["ID", "Nome", "RUC", "Contato", "Telefone", "Email"]
    rows = [[f.id, f.nome, f.ruc or "", f.contato or "", f.telefone or "", f.email or ""] for f in fornecedores]
    _display_report((columns, rows, "Nenhum fornecedor cadastrado."), title="Fornecedores")


# -----------------------
# recebimento
# -----------------------

@app.command("entrada-lote")
def cmd_entrada_lote(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Caminho do XLSX da nota de entrada"),
    nota: str = typer.Option(..., "--nota", help="Número da nota fiscal"),
    fornecedor: int = typer.Option(..., "--fornecedor", help="ID do fornecedor"),
    data: Optional[str] = typer.Option(None, "--data", help="Data de entrada (padrão: hoje)"),
    sem_compensacao: bool = typer.Option(False, "--sem-compensacao",
                                         help="Não desfaz produtos já atualizados em caso de falha"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Grava uma nota de entrada completa a partir de um XLSX (todas as linhas ou nenhuma)."""
    try:
        info = run_entrada_lote(path, nota, fornecedor, _contexto(ctx), db_path=db_path,
                                data_entrada=data, compensar=not sem_compensacao)
    except (ErroValidacao, ErroEstado, ErroPersistencia) as e:
        _falhar(e)
    _display_lote(info, title=f"Nota {nota}")
    if info["erros"] or not info["gravado"]:
        raise typer.Exit(code=1)


@app.command("lote-validade")
def cmd_lote_validade(
    ctx: typer.Context,
    produto: str = typer.Option(..., help="Nome do produto"),
    lote: str = typer.Option(..., help="Lote"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Mostra a validade registrada na última entrada do mesmo produto e lote."""
    validade = consultar_validade_lote(produto, lote, _contexto(ctx), db_path=db_path)
    typer.echo(validade or "(None)")


# -----------------------
# reposição
# -----------------------

@app.command("verificar")
def cmd_verificar(
    ctx: typer.Context,
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Mostra a sugestão de reposição (crítica ou proativa) agrupada por laboratório."""
    sugestao = run_verificar(_contexto(ctx), db_path=db_path)
    _display_sugestao(sugestao)


pedidos_app = typer.Typer(help="Ordens de compra")
app.add_typer(pedidos_app, name="pedidos")


@pedidos_app.command("gerar")
def cmd_pedidos_gerar(
    ctx: typer.Context,
    fornecedor: List[str] = typer.Option([], "--fornecedor", "-f",
                                         help="GRUPO=ID_FORNECEDOR (repetível)"),
    excluir: List[int] = typer.Option([], "--excluir", help="ID de produto a desmarcar (repetível)"),
    quantidade: List[str] = typer.Option([], "--qtd", help="ID_PRODUTO=QUANTIDADE (repetível)"),
    data: Optional[str] = typer.Option(None, "--data", help="Data do pedido (padrão: hoje)"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Gera ordens de compra em rascunho para os grupos com fornecedor atribuído."""
    c = _contexto(ctx)
    sugestao = run_verificar(c, db_path=db_path)
    try:
        for produto_id in excluir:
            sugestao.selecionar(produto_id, False)
        for produto_id, qtd in _pares(quantidade, "--qtd").items():
            sugestao.ajustar_quantidade(int(produto_id), int(qtd))
        atribuicao = {g: int(fid) for g, fid in _pares(fornecedor, "--fornecedor").items()}
    except KeyError as e:
        raise typer.BadParameter(f"Produto {e.args[0]} não está na sugestão")
    except ValueError as e:
        raise typer.BadParameter(str(e))
    except ErroValidacao as e:
        _falhar(e)

    resultado = run_gerar_pedidos(sugestao, atribuicao, c, db_path=db_path, data_pedido=data)

    linhas = [f"Ordens geradas: {resultado.quantidade_gerada}"]
    for o in resultado.ordens:
        linhas.append(f"  #{o.id} {o.fornecedor}: {len(o.itens)} item(ns)")
    if resultado.ignorados:
        linhas.append(f"Grupos ignorados: {', '.join(resultado.ignorados)}")
    console.print(Panel("\n".join(linhas), title="Pedidos"))
    for grupo, erro in resultado.falhas.items():
        console.print(Panel(str(erro), title=f"Falha: {grupo}", border_style="red"))
    if resultado.falhas:
        raise typer.Exit(code=2)


@pedidos_app.command("listar")
def cmd_pedidos_listar(
    ctx: typer.Context,
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Lista as ordens de compra."""
    _display_report(relatorio_ordens(_contexto(ctx), db_path=db_path), title="Ordens de Compra")


# -----------------------
# relatórios
# -----------------------

rel_app = typer.Typer(help="Relatórios de estoque e movimentação")
app.add_typer(rel_app, name="rel")


@rel_app.command("estoque-baixo")
def rel_estoque_baixo(
    ctx: typer.Context,
    todos: bool = typer.Option(False, "--todos", help="Inclui produtos com status OK"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Produtos com status CRITICO ou ALERTA."""
    res = relatorio_estoque_baixo(_contexto(ctx), db_path=db_path, incluir_ok=todos)
    _display_report(res, title="Estoque Baixo")


@rel_app.command("vencimentos")
def rel_vencimentos(
    ctx: typer.Context,
    dias: Optional[int] = typer.Option(None, help="Dias até o vencimento (padrão: parâmetro dias_a_vencer)"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Produtos vencidos ou próximos do vencimento."""
    res = relatorio_produtos_a_vencer(_contexto(ctx), dias=dias, db_path=db_path)
    _display_report(res, title="Produtos a Vencer")


@rel_app.command("entradas")
def rel_entradas(
    ctx: typer.Context,
    nota: Optional[str] = typer.Option(None, "--nota", help="Filtra por nota fiscal"),
    limite: int = typer.Option(100, help="Máximo de linhas"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Histórico de entradas (mais recentes primeiro)."""
    res = relatorio_entradas(_contexto(ctx), nota_fiscal=nota, limite=limite, db_path=db_path)
    _display_report(res, title="Entradas")


@rel_app.command("notas")
def rel_notas(
    ctx: typer.Context,
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Totais por nota fiscal."""
    _display_report(relatorio_notas(_contexto(ctx), db_path=db_path), title="Notas de Entrada")


@app.command("tui")
def cmd_tui(
    ctx: typer.Context,
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Inicia a sessão interativa (recebimento e assistente de pedidos)."""
    from farmacia.adapters.tui import main_tui
    try:
        main_tui(_contexto(ctx), db_path=db_path)
    except KeyboardInterrupt:
        typer.echo("\nSaindo...")
        raise typer.Exit(0)


def main():
    app()


if __name__ == "__main__":
    main()
