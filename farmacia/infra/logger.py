"""
Sistema de logging para as operações de recebimento e reposição.

Este módulo configura e fornece loggers para registrar todas as operações
críticas do sistema: recebimentos (entradas), geração de pedidos e
operações no banco de dados.
"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional


# Flag global para habilitar/desabilitar logging
ENABLE_LOGGING = os.environ.get("FARMACIA_LOGGING", "0").strip().lower() in {"1", "true", "sim"}
# Flag global para habilitar/desabilitar prints/output
ENABLE_OUTPUT = False

def print_system(*args, **kwargs):
    """Print controlado pelo ENABLE_OUTPUT."""
    if ENABLE_OUTPUT:
        print(*args, **kwargs)

# Configuração base dos loggers
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

def setup_logger(name: str, log_file: str, level: int = logging.INFO) -> logging.Logger:
    """
    Configura um logger específico com arquivo de saída.

    O arquivo só é criado na primeira mensagem efetivamente registrada.

    Args:
        name: Nome do logger
        log_file: Caminho do arquivo de log
        level: Nível de logging (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Logger configurado
    """
    log_path = Path(log_file)

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    # Remove handlers anteriores (reimportação em testes)
    while logger.handlers:
        logger.removeHandler(logger.handlers[0])

    file_handler = _DirFileHandler(log_path, encoding='utf-8', delay=True)
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    logger.addHandler(file_handler)

    return logger


class _DirFileHandler(logging.FileHandler):
    """FileHandler que cria o diretório do arquivo ao abrir."""

    def _open(self):
        Path(self.baseFilename).parent.mkdir(parents=True, exist_ok=True)
        return super()._open()


# Diretório base para logs
LOGS_DIR = Path(os.environ.get("FARMACIA_LOGS_DIR") or Path(__file__).parent.parent / "logs")

LOG_FILES = {
    "transactions": LOGS_DIR / "transactions.log",
    "entradas": LOGS_DIR / "entradas.log",
    "pedidos": LOGS_DIR / "pedidos.log",
    "database": LOGS_DIR / "database.log",
    "system": LOGS_DIR / "system.log",
}

transaction_logger = setup_logger('farmacia.transactions', str(LOG_FILES["transactions"]))
entrada_logger = setup_logger('farmacia.entradas', str(LOG_FILES["entradas"]))
pedido_logger = setup_logger('farmacia.pedidos', str(LOG_FILES["pedidos"]))
database_logger = setup_logger('farmacia.database', str(LOG_FILES["database"]))
system_logger = setup_logger('farmacia.system', str(LOG_FILES["system"]))


def _enabled() -> bool:
    return ENABLE_LOGGING or ENABLE_OUTPUT


def log_transaction(operation: str, data: Dict[str, Any], result: Optional[Any] = None, error: Optional[str] = None) -> None:
    """
    Registra uma transação completa no log.

    Args:
        operation: Tipo de operação (recebimento, gerar_pedidos, etc.)
        data: Dados da transação
        result: Resultado da operação (opcional)
        error: Mensagem de erro (opcional)
    """
    if not _enabled():
        return
    stamp = datetime.now().isoformat(timespec="seconds")
    if error:
        transaction_logger.error(f"TRANSACTION_FAILED: {operation} @ {stamp} - {error} - Data: {data}")
    else:
        transaction_logger.info(f"TRANSACTION_SUCCESS: {operation} @ {stamp} - Result: {result} - Data: {data}")

def log_entrada(action: str, produto: str, quantidade: Any, lote: Optional[str] = None, **kwargs) -> None:
    """
    Log específico para linhas de recebimento.

    Args:
        action: Ação realizada (stage, commit, compensate)
        produto: Nome do produto
        quantidade: Quantidade em unidades canônicas
        lote: Lote do produto (opcional)
        **kwargs: Dados adicionais
    """
    if not _enabled():
        return
    log_data = {
        "action": action,
        "produto": produto,
        "quantidade": quantidade,
        "lote": lote,
        **kwargs
    }
    entrada_logger.info(f"ENTRADA_{action.upper()}: {log_data}")

def log_pedido(action: str, grupo: str, fornecedor: Optional[str] = None, itens: int = 0, **kwargs) -> None:
    """
    Log específico para geração de ordens de compra.

    Args:
        action: Ação realizada (create, skip, fail, compensate)
        grupo: Laboratório do grupo
        fornecedor: Fornecedor atribuído
        itens: Número de linhas
        **kwargs: Dados adicionais
    """
    if not _enabled():
        return
    log_data = {
        "action": action,
        "grupo": grupo,
        "fornecedor": fornecedor,
        "itens": itens,
        **kwargs
    }
    pedido_logger.info(f"PEDIDO_{action.upper()}: {log_data}")

def log_database_operation(table: str, operation: str, affected_rows: int = 0, **kwargs) -> None:
    """
    Log específico para operações no banco de dados.

    Args:
        table: Nome da tabela
        operation: Operação SQL (INSERT, UPDATE, DELETE, SELECT)
        affected_rows: Número de linhas afetadas
        **kwargs: Dados adicionais
    """
    if not _enabled():
        return
    log_data = {
        "table": table,
        "operation": operation,
        "affected_rows": affected_rows,
        **kwargs
    }
    database_logger.info(f"DB_{operation}: {log_data}")

def log_system_event(event: str, details: Optional[Dict[str, Any]] = None, level: str = "info") -> None:
    """
    Log para eventos do sistema.

    Args:
        event: Descrição do evento
        details: Detalhes adicionais (opcional)
        level: Nível do log (info, warning, error)
    """
    if not _enabled():
        return
    log_data = {
        "event": event,
        "details": details or {}
    }
    log_method = getattr(system_logger, level.lower(), system_logger.info)
    log_method(f"SYSTEM_EVENT: {event} - {log_data}")

def log_file_operation(operation: str, file_path: str, rows_processed: int = 0, **kwargs) -> None:
    """
    Log para operações de arquivo (importação/exportação).
    """
    if not _enabled():
        return
    log_data = {
        "operation": operation,
        "file_path": file_path,
        "rows_processed": rows_processed,
        **kwargs
    }
    system_logger.info(f"FILE_{operation.upper()}: {log_data}")

def get_log_summary(log_type: str = "transactions", lines: int = 100) -> str:
    """
    Obtém as linhas mais recentes de um log.

    Args:
        log_type: Tipo de log (transactions, entradas, pedidos, database, system)
        lines: Número de linhas a retornar

    Returns:
        Conteúdo do log como string
    """
    log_file = LOG_FILES.get(log_type)
    if not log_file or not log_file.exists():
        return f"Log {log_type} não encontrado."

    try:
        with open(log_file, 'r', encoding='utf-8') as f:
            all_lines = f.readlines()
    except OSError as e:
        return f"Erro ao ler log {log_type}: {e}"
    return ''.join(all_lines[-lines:])
