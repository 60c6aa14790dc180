from pathlib import Path

from farmacia.infra import logger


def _logger_temporario(monkeypatch, tmp_path: Path, tipo: str, atributo: str) -> Path:
    arquivo = tmp_path / f"{tipo}.log"
    monkeypatch.setattr(logger, atributo, logger.setup_logger(f"farmacia.test.{tipo}", str(arquivo)))
    monkeypatch.setitem(logger.LOG_FILES, tipo, arquivo)
    return arquivo


def test_logging_desabilitado_nao_cria_arquivo(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(logger, "ENABLE_LOGGING", False)
    arquivo = _logger_temporario(monkeypatch, tmp_path, "transactions", "transaction_logger")

    logger.log_transaction("recebimento", {"nota": "NF-1"}, result={"aplicados": 2})

    assert not arquivo.exists()
    assert logger.get_log_summary("transactions") == "Log transactions não encontrado."


def test_log_transaction_e_resumo(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(logger, "ENABLE_LOGGING", True)
    _logger_temporario(monkeypatch, tmp_path, "transactions", "transaction_logger")

    logger.log_transaction("recebimento", {"nota": "NF-1"}, result={"aplicados": 2})
    logger.log_transaction("recebimento", {"nota": "NF-2"}, error="database is locked")
    logger.transaction_logger.handlers[0].close()

    resumo = logger.get_log_summary("transactions")
    assert "TRANSACTION_SUCCESS: recebimento" in resumo
    assert "TRANSACTION_FAILED: recebimento" in resumo
    assert "database is locked" in resumo
    assert logger.get_log_summary("transactions", lines=1).count("\n") == 1


def test_log_entrada_e_pedido(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(logger, "ENABLE_LOGGING", True)
    _logger_temporario(monkeypatch, tmp_path, "entradas", "entrada_logger")
    _logger_temporario(monkeypatch, tmp_path, "pedidos", "pedido_logger")

    logger.log_entrada("commit", "Amoxicilina", 20, lote="L1", nota_fiscal="NF-1")
    logger.log_pedido("create", "Bayer", "Andina", itens=2)
    logger.entrada_logger.handlers[0].close()
    logger.pedido_logger.handlers[0].close()

    assert "ENTRADA_COMMIT" in logger.get_log_summary("entradas")
    assert "'lote': 'L1'" in logger.get_log_summary("entradas")
    assert "PEDIDO_CREATE" in logger.get_log_summary("pedidos")


def test_log_desconhecido():
    assert logger.get_log_summary("inexistente") == "Log inexistente não encontrado."
