"""
Utilidades de parsing para valores digitados ou lidos de planilhas.

Este módulo interpreta os formatos típicos das notas de fornecedor e das
telas de recebimento: valores monetários com vírgula ou ponto decimal e
símbolo de moeda ("S/ 12,50", "R$ 1.234,56"), quantidades inteiras, nomes
de nível de embalagem em português ou espanhol ("Caixa", "caja", "CX") e
datas em "DD/MM/AAAA" ou ISO.
"""

from __future__ import annotations

import re
import unicodedata
from datetime import date, datetime
from typing import Any, Optional

from farmacia.domain.erros import ValorInvalido
from farmacia.domain.models import NivelEmbalagem

_NUM_RE = re.compile(r"[-+]?\d[\d.,]*")

_NIVEIS = {
    "unidade": NivelEmbalagem.UNIDADE,
    "unidad": NivelEmbalagem.UNIDADE,
    "un": NivelEmbalagem.UNIDADE,
    "und": NivelEmbalagem.UNIDADE,
    "u": NivelEmbalagem.UNIDADE,
    "blister": NivelEmbalagem.BLISTER,
    "bl": NivelEmbalagem.BLISTER,
    "blt": NivelEmbalagem.BLISTER,
    "caixa": NivelEmbalagem.CAIXA,
    "caja": NivelEmbalagem.CAIXA,
    "cx": NivelEmbalagem.CAIXA,
    "cj": NivelEmbalagem.CAIXA,
    "pacote": NivelEmbalagem.PACOTE,
    "paquete": NivelEmbalagem.PACOTE,
    "pct": NivelEmbalagem.PACOTE,
    "pq": NivelEmbalagem.PACOTE,
}


def _sem_acentos(s: str) -> str:
    return "".join(ch for ch in unicodedata.normalize("NFKD", s) if not unicodedata.combining(ch))


def _vazio(txt: Any) -> bool:
    return txt is None or not str(txt).strip()


def parse_decimal(txt: Any) -> Optional[float]:
    """Interpreta um valor monetário ou decimal.

    Aceita vírgula ou ponto como separador decimal. Quando ambos aparecem,
    o último é o decimal e o outro é separador de milhar.

    Exemplos:
        "12,50"       → 12.5
        "S/ 1.234,56" → 1234.56
        "1,234.56"    → 1234.56
        "-5"          → -5.0
        ""            → None

    Raises:
        ValorInvalido: se o texto não contiver número.
    """
    if isinstance(txt, (int, float)) and not isinstance(txt, bool):
        return float(txt)
    if _vazio(txt):
        return None
    s = str(txt).strip()
    m = _NUM_RE.search(s)
    if not m:
        raise ValorInvalido("numero", txt)
    num = m.group(0).rstrip(".,")
    if "," in num and "." in num:
        if num.rfind(",") > num.rfind("."):
            num = num.replace(".", "").replace(",", ".")
        else:
            num = num.replace(",", "")
    elif "," in num:
        num = num.replace(",", ".")
    try:
        return float(num)
    except ValueError:
        raise ValorInvalido("numero", txt) from None


def parse_inteiro(txt: Any) -> Optional[int]:
    """Interpreta uma quantidade inteira ("3", "3.0", " 12 ")."""
    v = parse_decimal(txt)
    if v is None:
        return None
    if v != int(v):
        raise ValorInvalido("quantidade", txt)
    return int(v)


def parse_nivel_embalagem(txt: Any, default: NivelEmbalagem = NivelEmbalagem.UNIDADE) -> NivelEmbalagem:
    """Mapeia o nome de um nível de embalagem para ``NivelEmbalagem``.

    Exemplos: "Caixa", "caja", "CX" → CAIXA; "" → ``default``.
    """
    if isinstance(txt, NivelEmbalagem):
        return txt
    if _vazio(txt):
        return default
    chave = _sem_acentos(str(txt)).strip().lower().rstrip(".")
    if chave in _NIVEIS:
        return _NIVEIS[chave]
    if chave.endswith("s") and chave[:-1] in _NIVEIS:
        return _NIVEIS[chave[:-1]]
    if chave.endswith("es") and chave[:-2] in _NIVEIS:
        return _NIVEIS[chave[:-2]]
    raise ValorInvalido("nivel_embalagem", txt)


def parse_data(txt: Any) -> Optional[str]:
    """Converte para data ISO (YYYY-MM-DD).

    Aceita ``date``/``datetime``, "DD/MM/AAAA", "DD-MM-AAAA", "DD/MM/AA",
    "AAAA-MM-DD" e "AAAA-MM-DD HH:MM:SS".
    """
    if isinstance(txt, datetime):
        return txt.date().isoformat()
    if isinstance(txt, date):
        return txt.isoformat()
    if _vazio(txt):
        return None
    s = str(txt).strip()
    for fmt in ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%d/%m/%y", "%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S"):
        try:
            return datetime.strptime(s, fmt).date().isoformat()
        except ValueError:
            continue
    raise ValorInvalido("data", txt)
