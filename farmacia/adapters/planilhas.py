"""
Loaders para planilhas (XLSX) de nota de entrada e de catálogo de produtos.

Essas funções:
- leem planilhas XLSX usando pandas;
- normalizam cabeçalhos (acentos, variações, sinônimos em português e espanhol);
- retornam listas de dicionários com as chaves esperadas pelos casos de uso.

Observações:
- Valores numéricos são preservados como texto; a conversão (vírgula
  decimal, moeda, nível de embalagem) é feita por `farmacia.adapters.parsers`
  no caso de uso, para que erros sejam reportados por linha.
- Datas são normalizadas para ISO (YYYY-MM-DD) quando possível.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
import pandas as pd
import re


# ---------------------------
# utilitários de normalização
# ---------------------------

def _slug(s: str) -> str:
    """Normaliza cabeçalhos: minúsculas, sem acentos, sem não-alfanumérico."""
    if s is None:
        return ""
    s = str(s).strip().lower()
    acentos = dict(zip("áàâãäéèêëíìîïóòôõöúùûüçñ", "aaaaaeeeeiiiiooooouuuucn"))
    s = "".join(acentos.get(ch, ch) for ch in s)
    s = re.sub(r"[^a-z0-9]+", " ", s)
    s = re.sub(r"\s+", " ", s).strip()
    return s


def _safe_get(row, key) -> Optional[str]:
    """Lê um valor da linha tratando NA e strings vazias como None."""
    val = row.get(key)
    if val is None or pd.isna(val):
        return None
    s = str(val).strip()
    return s or None


def _to_date_iso(val: Any) -> Optional[str]:
    """Converte valor para data ISO (YYYY-MM-DD) se possível; mantém o texto caso contrário."""
    if val is None:
        return None
    if isinstance(val, pd.Timestamp):
        return val.date().isoformat()
    s = str(val).strip()
    if not s:
        return None
    if re.fullmatch(r"\d{4}-\d{2}-\d{2}( .*)?", s):
        d = pd.to_datetime(s[:10], format="%Y-%m-%d", errors="coerce")
    else:
        d = pd.to_datetime(s, dayfirst=True, errors="coerce")
    if pd.isna(d):
        # devolve o texto original; o caso de uso reporta o erro na linha
        return s
    return d.date().isoformat()


_ALIASES = {
    # produto
    "codigo": "codigo",
    "cod": "codigo",
    "sku": "codigo",
    "codigo de barras": "codigo",
    "produto": "produto",
    "producto": "produto",
    "nome": "produto",
    "nombre": "produto",
    "descricao": "produto",
    "laboratorio": "laboratorio",
    "lab": "laboratorio",
    "fabricante": "laboratorio",

    # compra
    "quantidade": "quantidade",
    "qtde": "quantidade",
    "qtd": "quantidade",
    "cantidad": "quantidade",
    "unidade compra": "unidade_compra",
    "unidade de compra": "unidade_compra",
    "unidad compra": "unidade_compra",
    "embalagem": "unidade_compra",
    "presentacion": "unidade_compra",
    "custo total": "custo_total",
    "costo total": "custo_total",
    "valor total": "custo_total",
    "total": "custo_total",
    "margem": "margem",
    "ganancia": "margem",
    "margen": "margem",
    "lote": "lote",
    "validade": "data_validade",
    "data validade": "data_validade",
    "data de validade": "data_validade",
    "vencimento": "data_validade",
    "vencimiento": "data_validade",
    "f vencimiento": "data_validade",

    # embalagens
    "unidades blister": "blister_u",
    "blister u": "blister_u",
    "unidades por blister": "blister_u",
    "unidades caixa": "caixa_u",
    "caixa u": "caixa_u",
    "caja u": "caixa_u",
    "unidades por caixa": "caixa_u",
    "unidades por caja": "caixa_u",
    "unidades pacote": "pacote_u",
    "pacote u": "pacote_u",
    "paquete u": "pacote_u",
    "unidades por pacote": "pacote_u",
    "unidades por paquete": "pacote_u",

    # preços
    "preco unidade": "preco_unidade",
    "preco unitario": "preco_unidade",
    "unid pv": "preco_unidade",
    "precio unidad": "preco_unidade",
    "preco blister": "preco_blister",
    "blister pv": "preco_blister",
    "precio blister": "preco_blister",
    "preco caixa": "preco_caixa",
    "caixa pv": "preco_caixa",
    "caja pv": "preco_caixa",
    "precio caja": "preco_caixa",
    "preco pacote": "preco_pacote",
    "pacote pv": "preco_pacote",
    "paquete pv": "preco_pacote",
    "precio paquete": "preco_pacote",

    # catálogo
    "estoque": "estoque",
    "stock": "estoque",
    "stock unid": "estoque",
    "estoque minimo": "estoque_min",
    "estoque min": "estoque_min",
    "stock min": "estoque_min",
    "stock minimo": "estoque_min",
    "custo unitario": "custo_unitario",
    "costo x unid": "custo_unitario",
    "costo unitario": "custo_unitario",
}


def _normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Renomeia colunas com base em sinônimos/variações."""
    new_cols = {}
    for col in df.columns:
        key = _slug(col)
        new_cols[col] = _ALIASES.get(key, key.replace(" ", "_"))  # sem alias: slug
    return df.rename(columns=new_cols)


def _read(path: str) -> pd.DataFrame:
    df = pd.read_excel(path, dtype="string")
    df = _normalize_columns(df)
    return df.dropna(how="all")


# ---------------------------
# loaders públicos (XLSX)
# ---------------------------

_CAMPOS_EMBALAGEM = ("blister_u", "caixa_u", "pacote_u",
                     "preco_unidade", "preco_blister", "preco_caixa", "preco_pacote")


def load_recebimento_from_xlsx(path: str) -> List[Dict[str, Any]]:
    """Lê o XLSX de uma nota de entrada e retorna uma linha por item.

    Campos de saída (chaves do dict por linha):
      - codigo, produto: identificação (ao menos um deve existir)
      - quantidade: str | None (quantidade comprada no nível `unidade_compra`)
      - unidade_compra: str | None (Unidade/Blister/Caixa/Pacote; vazio = Unidade)
      - custo_total: str | None (total pago pela linha)
      - margem: str | None (vazio = margem padrão)
      - lote: str | None
      - data_validade: ISO date | None
      - blister_u, caixa_u, pacote_u: ajustes de unidades por embalagem
      - preco_unidade, preco_blister, preco_caixa, preco_pacote: preços manuais
    """
    df = _read(path)
    out: List[Dict[str, Any]] = []
    for _, row in df.iterrows():
        rec = {
            "codigo": _safe_get(row, "codigo"),
            "produto": _safe_get(row, "produto"),
            "quantidade": _safe_get(row, "quantidade"),
            "unidade_compra": _safe_get(row, "unidade_compra"),
            "custo_total": _safe_get(row, "custo_total"),
            "margem": _safe_get(row, "margem"),
            "lote": _safe_get(row, "lote"),
            "data_validade": _to_date_iso(_safe_get(row, "data_validade")),
        }
        for campo in _CAMPOS_EMBALAGEM:
            rec[campo] = _safe_get(row, campo)
        out.append(rec)
    return out


def load_produtos_from_xlsx(path: str) -> List[Dict[str, Any]]:
    """Lê o XLSX de catálogo de produtos.

    Campos de saída: codigo, produto, laboratorio, estoque, estoque_min,
    custo_unitario, lote, data_validade e os campos de embalagem/preço.
    """
    df = _read(path)
    out: List[Dict[str, Any]] = []
    for _, row in df.iterrows():
        rec = {
            "codigo": _safe_get(row, "codigo"),
            "produto": _safe_get(row, "produto"),
            "laboratorio": _safe_get(row, "laboratorio"),
            "estoque": _safe_get(row, "estoque"),
            "estoque_min": _safe_get(row, "estoque_min"),
            "custo_unitario": _safe_get(row, "custo_unitario"),
            "lote": _safe_get(row, "lote"),
            "data_validade": _to_date_iso(_safe_get(row, "data_validade")),
        }
        for campo in _CAMPOS_EMBALAGEM:
            rec[campo] = _safe_get(row, campo)
        out.append(rec)
    return out
