# farmacia/config.py
"""
Configurações globais e valores padrão do recebimento/reposição.
"""

import os
from dataclasses import dataclass


# Caminho padrão do banco de dados SQLite
DB_PATH = os.environ.get("FARMACIA_DB") or os.path.join(os.getcwd(), "farmacia.db")


@dataclass
class DefaultConfig:
    """Valores padrão para parâmetros do sistema."""
    margem_padrao: float = 30.0          # % de ganho sugerido no recebimento
    teto_proativo: int = 50              # estoque abaixo disso entra na reposição proativa
    piso_proativo: int = 20              # quantidade mínima sugerida na reposição proativa
    dias_a_vencer: int = 60              # janela do relatório de vencimentos
    estado_ordem_inicial: str = "Rascunho"
    grupo_sem_laboratorio: str = "Sem Laboratório"
    empresa_id: int = 1
    sede_id: int = 1
    usuario: str = "desconhecido"


# Instância global dos valores padrão
DEFAULTS = DefaultConfig()

# Chaves aceitas na tabela `params`
PARAM_KEYS = ("margem_padrao", "teto_proativo", "piso_proativo", "dias_a_vencer")
