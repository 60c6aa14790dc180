# farmacia/adapters/tui.py
"""
Sessão interativa (Rich) do recebimento e da reposição.

Menus:
- Recebimento: monta a nota item a item no carrinho, com prévia de preços
  por nível de embalagem, e grava tudo de uma vez.
- Assistente de pedidos: mostra a sugestão de reposição, permite marcar e
  ajustar produtos, atribuir fornecedor por laboratório e gerar as ordens.
- Relatórios.
"""

from __future__ import annotations

from typing import Dict, Optional

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt, Confirm, IntPrompt
from rich.table import Table
from rich.align import Align

from farmacia.config import DB_PATH, DEFAULTS
from farmacia.adapters.parsers import parse_data, parse_decimal, parse_nivel_embalagem
from farmacia.domain.carrinho import CarrinhoRecebimento, EstadoCarrinho
from farmacia.domain.erros import ErroFarmacia, FalhaCommitParcial
from farmacia.domain.models import Contexto, Fornecedor, NotaEntrada, Produto
from farmacia.domain.precificacao import FormularioItem
from farmacia.infra.migrations import apply_migrations
from farmacia.infra.views import create_views
from farmacia.infra.repositories import EntradaRepo, FornecedorRepo, ProdutoRepo
from farmacia.usecases.registrar_entrada import novo_carrinho, run_recebimento
from farmacia.usecases.verificar_estoque import SugestaoReposicao, run_verificar
from farmacia.usecases.gerar_pedidos import run_gerar_pedidos
from farmacia.usecases.relatorios import (
    relatorio_estoque_baixo,
    relatorio_notas,
    relatorio_ordens,
    relatorio_produtos_a_vencer,
)


def _money(v: Optional[float]) -> str:
    return "" if v is None else f"{v:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")


class FarmaciaTUI:
    """Interface de terminal para recebimento e reposição."""

    def __init__(self, ctx: Contexto, db_path: str = DB_PATH, console: Optional[Console] = None):
        self.console = console or Console()
        self.ctx = ctx
        self.db_path = db_path
        apply_migrations(db_path)
        create_views(db_path)
        self.produtos = ProdutoRepo(db_path)
        self.entradas = EntradaRepo(db_path)
        self.fornecedores = FornecedorRepo(db_path)

    def run(self) -> None:
        self.show_banner()
        while True:
            try:
                choice = self.show_main_menu()
                if choice == "1":
                    self.sessao_recebimento()
                elif choice == "2":
                    self.assistente_pedidos()
                elif choice == "3":
                    self.menu_relatorios()
                elif choice == "0":
                    self.console.print("\n[green]Saindo do sistema...[/green]")
                    break
            except KeyboardInterrupt:
                self.console.print("\n[red]Saindo...[/red]")
                break
            except ErroFarmacia as e:
                self.console.print(f"[red]Erro: {e}[/red]")

    def show_banner(self) -> None:
        banner = Panel.fit(
            "[bold blue]FARMÁCIA - RECEBIMENTO E REPOSIÇÃO[/bold blue]\n"
            f"[cyan]Empresa {self.ctx.empresa_id} · Sede {self.ctx.sede_id} · {self.ctx.usuario}[/cyan]",
            border_style="blue",
        )
        self.console.print(Align.center(banner))

    def show_main_menu(self) -> str:
        menu = Panel(
            "[bold]MENU PRINCIPAL[/bold]\n\n"
            "[yellow]1.[/yellow] Recebimento de mercadorias\n"
            "[yellow]2.[/yellow] Assistente de pedidos\n"
            "[yellow]3.[/yellow] Relatórios\n"
            "[yellow]0.[/yellow] Sair\n",
            title="Opções",
            border_style="green",
        )
        self.console.print(menu)
        return Prompt.ask("Escolha uma opção", choices=["0", "1", "2", "3"], console=self.console)

    # -----------------------
    # recebimento
    # -----------------------

    def _escolher_fornecedor(self) -> Optional[Fornecedor]:
        fornecedores = self.fornecedores.get_all(self.ctx)
        if not fornecedores:
            self.console.print("[yellow]Nenhum fornecedor cadastrado.[/yellow]")
            return None
        table = Table(title="Fornecedores")
        table.add_column("ID", justify="right")
        table.add_column("Nome")
        for f in fornecedores:
            table.add_row(str(f.id), f.nome)
        self.console.print(table)
        escolha = Prompt.ask("ID do fornecedor", choices=[str(f.id) for f in fornecedores], console=self.console)
        return next(f for f in fornecedores if str(f.id) == escolha)

    def _escolher_produto(self) -> Optional[Produto]:
        termo = Prompt.ask("Buscar produto (nome ou código)", console=self.console)
        achados = self.produtos.buscar(termo, self.ctx)
        if not achados:
            self.console.print("[yellow]Nenhum produto encontrado.[/yellow]")
            return None
        table = Table(title="Produtos")
        table.add_column("#", justify="right")
        table.add_column("Código")
        table.add_column("Produto")
        table.add_column("Estoque", justify="right")
        for i, p in enumerate(achados, start=1):
            table.add_row(str(i), p.codigo or "", p.nome, str(p.estoque))
        self.console.print(table)
        i = IntPrompt.ask("Produto #", choices=[str(i) for i in range(1, len(achados) + 1)], console=self.console)
        return achados[i - 1]

    def _mostrar_precos(self, form: FormularioItem) -> None:
        p = form.precificar()
        finais = form.precos_finais(p)
        table = Table(title=f"{form.produto.nome} - {p.quantidade_canonica} un · custo un. {_money(p.custo_unitario)}")
        table.add_column("Nível")
        table.add_column("Unidades", justify="right")
        table.add_column("Sugerido", justify="right")
        table.add_column("Final", justify="right")
        embalagens = form.embalagens()
        for nivel, sugerido in p.precos_sugeridos.items():
            editado = nivel in form.precos_ajustados
            table.add_row(nivel.value, str(embalagens.get(nivel, 1)), _money(sugerido),
                          f"[bold]{_money(finais[nivel])}[/bold]" if editado else _money(finais[nivel]))
        self.console.print(table)

    def _preencher_item(self, carrinho: CarrinhoRecebimento, produto: Produto) -> None:
        form = carrinho.selecionar_produto(produto)
        niveis = [n.value for n in form.niveis_disponiveis()]
        form.nivel = parse_nivel_embalagem(
            Prompt.ask("Nível da compra", choices=niveis, default=niveis[0], console=self.console))
        form.quantidade = IntPrompt.ask("Quantidade", default=1, console=self.console)
        form.custo_total = parse_decimal(Prompt.ask("Custo total da linha", console=self.console))
        form.margem = parse_decimal(Prompt.ask("Margem %", default=str(form.margem), console=self.console))
        form.lote = Prompt.ask("Lote", console=self.console)
        sugerida = carrinho.preencher_validade_por_lote(self.entradas, self.ctx)
        if sugerida:
            self.console.print(f"[dim]Validade do lote já registrada: {sugerida}[/dim]")
        form.data_validade = parse_data(
            Prompt.ask("Validade (DD/MM/AAAA)", default=form.data_validade or "", console=self.console))

        self._mostrar_precos(form)
        while Confirm.ask("Ajustar algum preço?", default=False, console=self.console):
            nivel = parse_nivel_embalagem(Prompt.ask("Nível", choices=niveis, console=self.console))
            valor = Prompt.ask("Novo preço (vazio = voltar ao sugerido)", default="", console=self.console)
            if valor.strip():
                form.definir_preco(nivel, parse_decimal(valor))
            else:
                form.limpar_preco(nivel)
            self._mostrar_precos(form)

        item = carrinho.adicionar_item()
        self.console.print(f"[green]✓ {item.produto.nome}: {item.quantidade_canonica} un adicionadas[/green]")

    def _mostrar_carrinho(self, carrinho: CarrinhoRecebimento) -> None:
        table = Table(title=f"Carrinho ({carrinho.estado.value})")
        table.add_column("#", justify="right")
        table.add_column("Produto")
        table.add_column("Qtd")
        table.add_column("Unidades", justify="right")
        table.add_column("Custo total", justify="right")
        table.add_column("PV unidade", justify="right")
        table.add_column("Lote")
        table.add_column("Validade")
        for i, it in enumerate(carrinho.itens, start=1):
            table.add_row(str(i), it.produto.nome, f"{it.quantidade} {it.nivel.value}",
                          str(it.quantidade_canonica), _money(it.custo_total), _money(it.preco_unidade),
                          it.lote, it.data_validade)
        self.console.print(table)
        self.console.print(f"Total da nota: [bold]{_money(carrinho.total())}[/bold] · "
                           f"{carrinho.total_unidades()} unidades")

    def sessao_recebimento(self) -> None:
        fornecedor = self._escolher_fornecedor()
        if fornecedor is None:
            return
        numero = Prompt.ask("Número da nota fiscal", console=self.console)
        data = parse_data(Prompt.ask("Data de entrada (vazio = hoje)", default="", console=self.console))
        nota = NotaEntrada(numero=numero, fornecedor=fornecedor, data_entrada=data)
        carrinho = novo_carrinho(self.db_path)

        while True:
            self.console.print(Panel(
                "[yellow]1.[/yellow] Adicionar item\n"
                "[yellow]2.[/yellow] Remover item\n"
                "[yellow]3.[/yellow] Ver carrinho\n"
                "[yellow]4.[/yellow] Gravar nota\n"
                "[yellow]0.[/yellow] Cancelar\n",
                title=f"Nota {numero} - {fornecedor.nome}",
                border_style="cyan",
            ))
            choice = Prompt.ask("Escolha uma opção", choices=["0", "1", "2", "3", "4"], console=self.console)
            if choice == "0":
                if not carrinho.itens or Confirm.ask("Descartar os itens?", default=False, console=self.console):
                    return
            elif choice == "1":
                produto = self._escolher_produto()
                if produto is None:
                    continue
                try:
                    self._preencher_item(carrinho, produto)
                except ErroFarmacia as e:
                    self.console.print(f"[red]Item não adicionado: {e}[/red]")
            elif choice == "2" and carrinho.itens:
                self._mostrar_carrinho(carrinho)
                i = IntPrompt.ask("Remover #", console=self.console)
                try:
                    carrinho.remover_item(i - 1)
                except IndexError as e:
                    self.console.print(f"[red]{e}[/red]")
            elif choice == "3":
                self._mostrar_carrinho(carrinho)
            elif choice == "4":
                if self._gravar(carrinho, nota):
                    return

    def _gravar(self, carrinho: CarrinhoRecebimento, nota: NotaEntrada) -> bool:
        try:
            resultado = run_recebimento(carrinho, nota, self.ctx, db_path=self.db_path)
        except ErroFarmacia as e:
            self.console.print(f"[red]{e}[/red]")
            return False
        if resultado.sucesso:
            self.console.print(f"[green]✓ Nota {resultado.nota_fiscal} gravada "
                               f"({len(resultado.itens)} itens).[/green]")
            return True

        erro = resultado.erro
        titulo = "Gravação parcial" if isinstance(erro, FalhaCommitParcial) else "Falha"
        table = Table(title=titulo)
        table.add_column("Produto")
        table.add_column("Status")
        table.add_column("Erro")
        for st in resultado.itens:
            table.add_row(st.produto, st.status, st.erro or "")
        table.add_row("[dim]movimentações[/dim]", resultado.status_movimentos, resultado.erro_movimentos or "")
        self.console.print(table)
        self.console.print(f"[red]{erro}[/red]")
        if carrinho.conciliacao_pendente:
            retirados = carrinho.conciliar()
            nomes = ", ".join(i.produto.nome for i in retirados)
            self.console.print(f"[yellow]Já gravados, retirados do carrinho para conferência manual: {nomes}[/yellow]")
        if carrinho.estado == EstadoCarrinho.FALHOU:
            self.console.print("[yellow]Os itens restantes continuam no carrinho para nova tentativa.[/yellow]")
            return False
        return not carrinho.itens

    # -----------------------
    # assistente de pedidos
    # -----------------------

    def _mostrar_sugestao(self, sugestao: SugestaoReposicao) -> None:
        for grupo, itens in sugestao.grupos.items():
            table = Table(title=f"{grupo} ({sugestao.tipo.value})")
            table.add_column("ID", justify="right")
            table.add_column("Sel.")
            table.add_column("Produto")
            table.add_column("Estoque", justify="right")
            table.add_column("Mínimo", justify="right")
            table.add_column("Qtd", justify="right")
            for c in itens:
                table.add_row(str(c.produto.id), "x" if c.selecionado else "", c.produto.nome,
                              str(c.produto.estoque), str(c.produto.estoque_min), str(c.quantidade))
            self.console.print(table)

    def assistente_pedidos(self) -> None:
        sugestao = run_verificar(self.ctx, db_path=self.db_path)
        if not sugestao.grupos:
            self.console.print("[green]Nenhum produto precisa de reposição.[/green]")
            return
        if not sugestao.fornecedores:
            self.console.print("[yellow]Cadastre fornecedores antes de gerar pedidos.[/yellow]")
            return

        while True:
            self._mostrar_sugestao(sugestao)
            choice = Prompt.ask(
                "[m]arcar/desmarcar · [q]uantidade · [g]erar · [0] voltar",
                choices=["m", "q", "g", "0"], console=self.console,
            )
            if choice == "0":
                return
            if choice in ("m", "q"):
                produto_id = IntPrompt.ask("ID do produto", console=self.console)
                try:
                    if choice == "m":
                        atual = next(c for c in sugestao.candidatos() if c.produto.id == produto_id)
                        sugestao.selecionar(produto_id, not atual.selecionado)
                    else:
                        sugestao.ajustar_quantidade(produto_id, IntPrompt.ask("Quantidade", console=self.console))
                except (StopIteration, KeyError):
                    self.console.print("[red]Produto fora da sugestão.[/red]")
                except ErroFarmacia as e:
                    self.console.print(f"[red]{e}[/red]")
                continue
            break

        ids = [str(f.id) for f in sugestao.fornecedores]
        self.console.print(", ".join(f"{f.id}={f.nome}" for f in sugestao.fornecedores))
        atribuicao: Dict[str, Optional[int]] = {}
        for grupo in sugestao.grupos:
            escolha = Prompt.ask(f"Fornecedor para {grupo} (vazio = pular)", choices=ids + [""],
                                 default="", show_choices=False, console=self.console)
            atribuicao[grupo] = int(escolha) if escolha else None

        resultado = run_gerar_pedidos(sugestao, atribuicao, self.ctx, db_path=self.db_path)
        self.console.print(f"[green]✓ {resultado.quantidade_gerada} ordem(ns) gerada(s).[/green]")
        for grupo in resultado.ignorados:
            self.console.print(f"[dim]Ignorado: {grupo}[/dim]")
        for grupo, erro in resultado.falhas.items():
            self.console.print(f"[red]{grupo}: {erro}[/red]")

    # -----------------------
    # relatórios
    # -----------------------

    def _tabela(self, report, titulo: str) -> None:
        columns, rows, msg = report
        if not rows:
            self.console.print(f"[yellow]{msg}[/yellow]")
            return
        table = Table(title=titulo, show_header=True, header_style="bold magenta")
        for col in columns:
            table.add_column(col, style="cyan")
        for row in rows:
            table.add_row(*[str(cell) if cell is not None else "" for cell in row])
        self.console.print(table)

    def menu_relatorios(self) -> None:
        while True:
            menu = Panel(
                "[bold]RELATÓRIOS[/bold]\n\n"
                "[yellow]1.[/yellow] Estoque baixo\n"
                "[yellow]2.[/yellow] Produtos a vencer\n"
                "[yellow]3.[/yellow] Notas de entrada\n"
                "[yellow]4.[/yellow] Ordens de compra\n"
                "[yellow]0.[/yellow] Voltar\n",
                title="Relatórios",
                border_style="red",
            )
            self.console.print(menu)
            choice = Prompt.ask("Escolha uma opção", choices=["0", "1", "2", "3", "4"], console=self.console)
            if choice == "0":
                break
            elif choice == "1":
                self._tabela(relatorio_estoque_baixo(self.ctx, db_path=self.db_path), "Estoque Baixo")
            elif choice == "2":
                dias = IntPrompt.ask("Janela em dias", default=DEFAULTS.dias_a_vencer, console=self.console)
                self._tabela(relatorio_produtos_a_vencer(self.ctx, dias=dias, db_path=self.db_path),
                             "Produtos a Vencer")
            elif choice == "3":
                self._tabela(relatorio_notas(self.ctx, db_path=self.db_path), "Notas de Entrada")
            elif choice == "4":
                self._tabela(relatorio_ordens(self.ctx, db_path=self.db_path), "Ordens de Compra")


def main_tui(ctx: Optional[Contexto] = None, db_path: str = DB_PATH) -> None:
    """Ponto de entrada principal da sessão interativa."""
    ctx = ctx or Contexto(DEFAULTS.empresa_id, DEFAULTS.sede_id, DEFAULTS.usuario)
    FarmaciaTUI(ctx, db_path=db_path).run()
