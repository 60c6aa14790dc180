# farmacia/domain/models.py
"""
Modelos (dataclasses) do domínio.

Observação importante:
- ``Produto.embalagens`` e ``Produto.precos`` são mapas esparsos por nível de
  embalagem. A ausência de uma chave significa que o nível não se aplica ao
  produto. A unidade é implícita (fator 1) e seu preço fica em ``preco_unidade``.
- ``Entrada`` é o registro de movimentação: somente inserção.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class NivelEmbalagem(str, Enum):
    UNIDADE = "Unidade"
    BLISTER = "Blister"
    CAIXA = "Caixa"
    PACOTE = "Pacote"


# Níveis acima da unidade, na ordem de exibição
NIVEIS_EMBALAGEM = (NivelEmbalagem.BLISTER, NivelEmbalagem.CAIXA, NivelEmbalagem.PACOTE)


@dataclass(frozen=True)
class Contexto:
    """Empresa, sede e operador da sessão. Passado a toda operação do núcleo."""
    empresa_id: int
    sede_id: int
    usuario: str


@dataclass
class Produto:
    """Cadastro de produto com estoque em unidades canônicas."""
    id: Optional[int]
    nome: str
    codigo: Optional[str] = None
    laboratorio: Optional[str] = None
    estoque: int = 0
    estoque_min: int = 0
    custo_unitario: Optional[float] = None
    preco_unidade: Optional[float] = None
    embalagens: Dict[NivelEmbalagem, int] = field(default_factory=dict)
    precos: Dict[NivelEmbalagem, float] = field(default_factory=dict)
    lote: Optional[str] = None
    data_validade: Optional[str] = None
    ativo: bool = True
    empresa_id: Optional[int] = None
    sede_id: Optional[int] = None

    def unidades_por(self, nivel: NivelEmbalagem) -> Optional[int]:
        if nivel == NivelEmbalagem.UNIDADE:
            return 1
        u = self.embalagens.get(nivel)
        return int(u) if u and u > 0 else None


@dataclass
class Fornecedor:
    id: Optional[int]
    nome: str
    ruc: Optional[str] = None
    contato: Optional[str] = None
    telefone: Optional[str] = None
    email: Optional[str] = None
    empresa_id: Optional[int] = None
    sede_id: Optional[int] = None


@dataclass
class NotaEntrada:
    """Cabeçalho da nota fiscal do fornecedor em recebimento."""
    numero: Optional[str]
    fornecedor: Optional[Fornecedor]
    data_entrada: Optional[str] = None  # ISO; None = hoje


@dataclass
class ItemRecebimento:
    """Linha preparada no carrinho de recebimento (nunca persistida diretamente)."""
    produto: Produto
    quantidade: int
    nivel: NivelEmbalagem
    custo_total: float
    margem: float
    lote: str
    data_validade: str
    quantidade_canonica: int
    custo_unitario: float
    embalagens: Dict[NivelEmbalagem, int] = field(default_factory=dict)
    preco_unidade: float = 0.0
    precos: Dict[NivelEmbalagem, float] = field(default_factory=dict)


@dataclass
class Entrada:
    """Movimentação de entrada (auditoria)."""
    nota_fiscal: str
    fornecedor: str
    produto_id: Optional[int]
    produto: str
    quantidade: int
    custo_unitario: float
    margem: float
    data_entrada: str
    data_validade: Optional[str]
    lote: Optional[str]
    usuario: str
    empresa_id: int
    sede_id: int
    id: Optional[int] = None


@dataclass
class ItemOrdemCompra:
    produto_id: int
    produto_nome: str
    quantidade: int
    custo_unitario_estimado: float
    ordem_id: Optional[int] = None
    id: Optional[int] = None

    @property
    def subtotal(self) -> float:
        return float(self.quantidade) * float(self.custo_unitario_estimado or 0.0)


@dataclass
class OrdemCompra:
    fornecedor: str
    data_pedido: str
    estado: str
    usuario: str
    empresa_id: int
    sede_id: int
    itens: List[ItemOrdemCompra] = field(default_factory=list)
    id: Optional[int] = None
