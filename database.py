# database.py
import logging
import re
from datetime import datetime

import httpx
import streamlit as st
from postgrest.exceptions import APIError
from supabase import create_client, Client

from constantes import TABLA_AUDITORIA

logger = logging.getLogger(__name__)

# Límite de filas por respuesta de Supabase
LOTE_LECTURA = 1000

CODIGO_COLUMNA_INEXISTENTE = "42703"
CODIGO_COLUMNA_CACHE = "PGRST204"
CODIGO_DUPLICADO = "23505"

_PATRONES_COLUMNA = [
    re.compile(r"column \"?([\w\.]+)\"? (?:of relation \"?\w+\"? )?does not exist", re.IGNORECASE),
    re.compile(r"could not find the '(\w+)' column", re.IGNORECASE),
]


# --- INICIALIZACIÓN ---
@st.cache_resource
def init_supabase():
    try:
        url = st.secrets["SUPABASE_URL"]
        key = st.secrets["SUPABASE_KEY"]
        return create_client(url, key)
    except Exception as e:
        logger.error("Credenciales de Supabase no configuradas: %s", e)
        return None


class ErrorPersistencia(Exception):
    """Error devuelto por la capa de datos, con su código cuando existe."""

    def __init__(self, mensaje, codigo=None):
        super().__init__(mensaje)
        self.mensaje = mensaje
        self.codigo = codigo

    def es_columna_inexistente(self):
        return self.codigo in (CODIGO_COLUMNA_INEXISTENTE, CODIGO_COLUMNA_CACHE) or self.columna_inexistente() is not None

    def columna_inexistente(self):
        for patron in _PATRONES_COLUMNA:
            m = patron.search(self.mensaje or "")
            if m:
                return m.group(1).split(".")[-1]
        return None

    def es_duplicado(self):
        return self.codigo == CODIGO_DUPLICADO


class Repositorio:
    """
    Acceso genérico a tablas de Supabase: select / insert / update / delete.

    Los filtros se expresan como diccionarios columna -> valor:
    `eq` (igualdad), `en` (columna IN lista) y `no_en` (columna NOT IN lista).
    """

    def __init__(self, cliente: Client):
        self.cliente = cliente

    def _ejecutar(self, consulta):
        try:
            return consulta.execute()
        except APIError as e:
            raise ErrorPersistencia(e.message or str(e), e.code) from e
        except httpx.HTTPError as e:
            raise ErrorPersistencia(f"Error de red: {e}") from e

    @staticmethod
    def _filtrar(consulta, eq=None, en=None, no_en=None):
        for col, val in (eq or {}).items():
            consulta = consulta.eq(col, val)
        for col, valores in (en or {}).items():
            consulta = consulta.in_(col, list(valores))
        for col, valores in (no_en or {}).items():
            if not valores:
                # "not in ()" coincide con todas las filas
                raise ValueError(f"Filtro NOT IN vacío sobre '{col}'")
            consulta = consulta.not_.in_(col, list(valores))
        return consulta

    def select(self, tabla, columnas="*", eq=None, en=None, no_en=None):
        """Descarga TODAS las filas que cumplen el filtro, paginando de 1000 en 1000."""
        if en is not None and any(not v for v in en.values()):
            return []
        filas = []
        inicio = 0
        while True:
            consulta = self._filtrar(self.cliente.table(tabla).select(columnas), eq, en, no_en)
            respuesta = self._ejecutar(consulta.order("id").range(inicio, inicio + LOTE_LECTURA - 1))
            datos_lote = respuesta.data or []
            filas.extend(datos_lote)
            if len(datos_lote) < LOTE_LECTURA:
                break
            inicio += LOTE_LECTURA
        return filas

    def insert(self, tabla, filas):
        if not filas:
            return []
        respuesta = self._ejecutar(self.cliente.table(tabla).insert(filas))
        return respuesta.data or []

    def update(self, tabla, cambios, eq=None):
        if not eq:
            raise ValueError(f"UPDATE sin filtro sobre '{tabla}'")
        consulta = self._filtrar(self.cliente.table(tabla).update(cambios), eq=eq)
        return self._ejecutar(consulta).data or []

    def delete(self, tabla, eq=None, en=None, no_en=None):
        if not (eq or en or no_en):
            raise ValueError(f"DELETE sin filtro sobre '{tabla}'")
        if en is not None and any(not v for v in en.values()):
            return []
        consulta = self._filtrar(self.cliente.table(tabla).delete(), eq, en, no_en)
        return self._ejecutar(consulta).data or []


class BitacoraAuditoria:
    """
    Registro de auditoría de mejor esfuerzo.

    Un fallo al escribir el log nunca interrumpe la operación principal:
    se reporta en el logger y se continúa.
    """

    def __init__(self, repositorio, usuario_id=None):
        self.repositorio = repositorio
        self.usuario_id = usuario_id

    def registrar_log(self, accion, tipo_entidad, id_entidad, detalles=None):
        datos = {
            "user_id": self.usuario_id,
            "action": accion,
            "entity_type": tipo_entidad,
            "entity_id": id_entidad,
            "details": detalles,
        }
        try:
            self.repositorio.insert(TABLA_AUDITORIA, [datos])
            return True
        except Exception as e:
            logger.warning("Error log auditoría (%s %s %s): %s", accion, tipo_entidad, id_entidad, e)
            return False


def ahora_iso():
    return datetime.now().isoformat()
