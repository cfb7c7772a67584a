# normalizacion.py
"""
Normalización de celdas de Excel.

Todas las funciones son totales (nunca lanzan excepciones) e idempotentes:
aplicarlas sobre un valor ya normalizado devuelve el mismo valor.
"""
import math
import numbers
import re
import unicodedata
from datetime import date, datetime, timedelta

import pandas as pd

# Día 0 de los seriales de Excel
EPOCA_EXCEL = datetime(1899, 12, 30)

VALORES_VACIOS = {"", "NAN", "NONE", "NULL", "NAT"}


def _es_vacio(raw):
    if raw is None:
        return True
    try:
        return bool(pd.isna(raw))
    except (TypeError, ValueError):
        return False


def sin_acentos(texto):
    """Quita tildes conservando la Ñ (DAÑADO -> DAÑADO, CÁMARA -> CAMARA)."""
    if texto is None:
        return ""
    texto = str(texto).replace("ñ", "\0n").replace("Ñ", "\0N")
    plano = "".join(c for c in unicodedata.normalize("NFD", texto) if unicodedata.category(c) != "Mn")
    return plano.replace("\0n", "ñ").replace("\0N", "Ñ")


def normalizar_encabezado(texto):
    """Clave de comparación: mayúsculas, sin tildes y con espacios simples."""
    return re.sub(r"\s+", " ", sin_acentos(texto).strip().upper())


def normalizar_texto(raw):
    if _es_vacio(raw):
        return None
    if isinstance(raw, bool):
        return str(raw)
    if isinstance(raw, float) and raw.is_integer():
        # pandas lee las series numéricas como 12345.0
        raw = int(raw)
    texto = str(raw).strip()
    if texto.upper() in VALORES_VACIOS:
        return None
    return texto


def normalizar_fecha(raw):
    """
    Convierte un valor de celda en `date`.

    Acepta seriales de Excel (días desde 1899-12-30), objetos fecha/hora y
    cadenas tipo ISO o dd/mm/aaaa. Lo vacío o inválido devuelve None.
    """
    if _es_vacio(raw) or isinstance(raw, bool):
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    try:
        if isinstance(raw, numbers.Real):
            if not math.isfinite(raw):
                return None
            return (EPOCA_EXCEL + timedelta(milliseconds=raw * 86400000)).date()

        texto = str(raw).strip()
        if not texto:
            return None
        iso = re.fullmatch(r"(\d{4})-(\d{2})-(\d{2})", texto)
        if iso:
            return date(int(iso.group(1)), int(iso.group(2)), int(iso.group(3)))
        fecha = pd.to_datetime(texto, dayfirst=True, errors="coerce")
        if pd.isna(fecha):
            return None
        return fecha.date()
    except (ValueError, TypeError, OverflowError):
        return None


def normalizar_cantidad(raw, defecto=None):
    if _es_vacio(raw) or isinstance(raw, bool):
        return defecto
    if isinstance(raw, numbers.Real):
        valor = float(raw)
    else:
        limpio = str(raw).replace("S/", "").replace("$", "").replace(",", "").strip()
        try:
            valor = float(limpio)
        except ValueError:
            return defecto
    if not math.isfinite(valor) or valor < 0:
        return defecto
    return int(valor) if valor.is_integer() else valor
