# importacion.py
"""
Carga masiva desde Excel: hojas -> sugerencia de sedes -> vista previa -> inserción por lotes.

La vista previa es una función pura de (hojas, mapeos, catálogos): se puede
recalcular cada vez que el operador cambia una sede o ignora una hoja sin
volver a leer el archivo. Sólo `confirmar_importacion` escribe en la base.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import pandas as pd

from clasificador import ClasificadorTipos, ConfiguracionClasificador, asegurar_tipo_respaldo
from constantes import (
    COLUMNAS_TIPO, MAX_ERRORES_VISTA_PREVIA, TABLA_ACTIVOS, TABLA_SEDES, TABLA_TIPOS, TAMANO_LOTE,
)
from database import ErrorPersistencia
from mapeo import mapear_fila, normalizar_fila, primer_valor
from sedes import ConfiguracionSedes, ResolvedorSedes

logger = logging.getLogger(__name__)


class EstadoImportacion(Enum):
    IDLE = "idle"
    FILE_LOADED = "file_loaded"
    PREVIEWING = "previewing"
    COMMITTING = "committing"
    COMMITTED = "committed"
    FAILED = "failed"


class ErrorImportacion(Exception):
    """Operación no permitida en el estado actual de la sesión."""


@dataclass
class HojaCruda:
    nombre: str
    filas: List[dict] = field(default_factory=list)
    # Fila de Excel de cada registro (la 1 es el encabezado)
    numeros_fila: Optional[List[int]] = None

    def numero_fila(self, idx):
        if self.numeros_fila:
            return self.numeros_fila[idx]
        return idx + 2


@dataclass
class MapeoHoja:
    hoja: str
    sede_id: Optional[str] = None
    ignorar: bool = False


@dataclass
class Catalogos:
    tipos: List[dict] = field(default_factory=list)
    sedes: List[dict] = field(default_factory=list)


@dataclass(frozen=True)
class ConfiguracionImportacion:
    clasificador: ConfiguracionClasificador = field(default_factory=ConfiguracionClasificador)
    sedes: ConfiguracionSedes = field(default_factory=ConfiguracionSedes)
    tamano_lote: int = TAMANO_LOTE
    max_errores: int = MAX_ERRORES_VISTA_PREVIA


@dataclass(frozen=True)
class VistaPrevia:
    total_hojas: int
    total_registros: int
    registros_validos: int
    registros_invalidos: int
    errores: tuple
    registros: tuple


@dataclass
class ResultadoImportacion:
    exito: bool
    insertados: int = 0
    omitidos: int = 0
    no_confirmados: int = 0
    error: Optional[str] = None

    @property
    def advertencia(self):
        if self.exito:
            return None
        return (f"Error al importar datos: {self.error}. {self.no_confirmados} registros no se pudieron "
                f"confirmar; es posible que algunos lotes ya se hayan insertado.")


# --- LECTURA ---

def leer_libro(archivo):
    """Lee todas las hojas del Excel. Las hojas sin filas se descartan."""
    libro = pd.read_excel(archivo, sheet_name=None, dtype=object, engine="openpyxl")
    hojas = []
    for nombre, df in libro.items():
        df.columns = [str(c).strip() for c in df.columns]
        df = df.loc[:, [c for c in df.columns if c and not c.startswith("Unnamed")]]
        df = df.dropna(how="all")
        if df.empty:
            continue
        df = df.astype(object).where(pd.notna(df), None)
        hojas.append(HojaCruda(str(nombre), df.to_dict("records"), [int(i) + 2 for i in df.index]))
    return hojas


def cargar_catalogos(repositorio):
    return Catalogos(
        tipos=repositorio.select(TABLA_TIPOS, "id, name"),
        sedes=repositorio.select(TABLA_SEDES, "*"),
    )


def sugerir_mapeos(hojas, catalogos, config=None):
    config = config or ConfiguracionImportacion()
    resolvedor = ResolvedorSedes(catalogos.sedes, config.sedes)
    return [MapeoHoja(hoja=h.nombre, sede_id=resolvedor.resolver(h.nombre)) for h in hojas if h.filas]


# --- VISTA PREVIA ---

def calcular_vista_previa(hojas, mapeos, catalogos, config=None):
    config = config or ConfiguracionImportacion()
    # Sin repositorio: la vista previa nunca escribe
    clasificador = ClasificadorTipos(catalogos.tipos, config.clasificador)
    por_hoja = {m.hoja: m for m in mapeos}

    total_hojas = total = validos = invalidos = 0
    errores = []
    registros = []

    def anotar(msg):
        if msg not in errores and len(errores) < config.max_errores:
            errores.append(msg)

    for hoja in hojas:
        mapeo = por_hoja.get(hoja.nombre)
        if mapeo is None or mapeo.ignorar:
            continue
        total_hojas += 1

        for idx, fila_cruda in enumerate(hoja.filas):
            total += 1
            nro_fila = hoja.numero_fila(idx)

            if not mapeo.sede_id:
                invalidos += 1
                anotar(f"Hoja '{hoja.nombre}' sin sede asignada")
                continue

            fila = normalizar_fila(fila_cruda)
            etiqueta = primer_valor(fila, COLUMNAS_TIPO)
            if etiqueta is None:
                invalidos += 1
                anotar(f"Fila {nro_fila} de hoja '{hoja.nombre}' sin tipo de activo")
                continue

            tipo_id, nombre_tipo = clasificador.clasificar(etiqueta)
            registro = mapear_fila(fila, tipo_id, nombre_tipo, mapeo.sede_id, hoja.nombre, nro_fila)
            if registro.es_valido:
                validos += 1
                registros.append(registro)
            else:
                invalidos += 1
                anotar(f"Tipo '{etiqueta.upper()}' no reconocido en hoja '{hoja.nombre}'")

    return VistaPrevia(
        total_hojas=total_hojas,
        total_registros=total,
        registros_validos=validos,
        registros_invalidos=invalidos,
        errores=tuple(errores),
        registros=tuple(registros),
    )


# --- CONFIRMACIÓN ---

def _sin_columnas(fila, columnas):
    return {k: v for k, v in fila.items() if k not in columnas}


def _descartar_importados(repositorio, lote, omitidas):
    """Quita del lote los registros cuya import_key ya existe (reintento tras un fallo parcial)."""
    if "import_key" in omitidas:
        return lote
    claves = [r.import_key for r in lote]
    try:
        existentes = repositorio.select(TABLA_ACTIVOS, "import_key", en={"import_key": claves})
    except ErrorPersistencia as e:
        if not e.es_columna_inexistente():
            raise
        logger.warning("La tabla %s no tiene import_key; se inserta sin control de duplicados", TABLA_ACTIVOS)
        omitidas.add("import_key")
        return lote
    ya = {f.get("import_key") for f in existentes}
    return [r for r in lote if r.import_key not in ya]


def _insertar_con_reintento(repositorio, filas, omitidas):
    try:
        repositorio.insert(TABLA_ACTIVOS, [_sin_columnas(f, omitidas) for f in filas])
        return
    except ErrorPersistencia as e:
        columna = e.columna_inexistente()
        if not e.es_columna_inexistente() or not columna or columna in omitidas:
            raise
        logger.warning("Columna '%s' no existe en %s; reintentando sin ella", columna, TABLA_ACTIVOS)
        omitidas.add(columna)
    repositorio.insert(TABLA_ACTIVOS, [_sin_columnas(f, omitidas) for f in filas])


def confirmar_importacion(vista, repositorio, tamano_lote=TAMANO_LOTE):
    """
    Inserta los registros válidos de la vista previa en lotes de `tamano_lote`.

    Cualquier error (salvo el de columna inexistente, que se reintenta una
    vez sin esa columna) aborta la importación. Los lotes ya enviados no se
    revierten; un reintento los salta gracias a `import_key`.
    """
    registros = [r for r in vista.registros if r.es_valido]
    if not registros:
        return ResultadoImportacion(exito=True)

    insertados = omitidos = 0
    omitidas = set()
    try:
        asegurar_tipo_respaldo(repositorio)
        for i in range(0, len(registros), tamano_lote):
            lote = registros[i:i + tamano_lote]
            pendientes = _descartar_importados(repositorio, lote, omitidas)
            omitidos += len(lote) - len(pendientes)
            if pendientes:
                _insertar_con_reintento(repositorio, [r.a_payload() for r in pendientes], omitidas)
                insertados += len(pendientes)
            logger.info("Lote %d: %d insertados, %d ya existían", i // tamano_lote + 1, len(pendientes), len(lote) - len(pendientes))
    except ErrorPersistencia as e:
        logger.error("Importación abortada tras %d registros: %s", insertados, e.mensaje)
        return ResultadoImportacion(
            exito=False,
            insertados=insertados,
            omitidos=omitidos,
            no_confirmados=len(registros) - insertados - omitidos,
            error=e.mensaje,
        )

    return ResultadoImportacion(exito=True, insertados=insertados, omitidos=omitidos)


# --- SESIÓN ---

class SesionImportacion:
    """
    Máquina de estados de una importación:
    IDLE -> FILE_LOADED -> PREVIEWING -> COMMITTING -> COMMITTED | FAILED.
    """

    def __init__(self, catalogos, config=None, repositorio=None):
        self.catalogos = catalogos
        self.config = config or ConfiguracionImportacion()
        self.repositorio = repositorio
        self.estado = EstadoImportacion.IDLE
        self.hojas = []
        self.mapeos = []
        self.resultado = None

    def _exigir(self, *estados):
        if self.estado not in estados:
            raise ErrorImportacion(f"Operación no permitida en estado '{self.estado.value}'")

    def cargar(self, archivo):
        """Acepta un archivo Excel o una lista de HojaCruda ya leída."""
        self._exigir(EstadoImportacion.IDLE, EstadoImportacion.FILE_LOADED, EstadoImportacion.PREVIEWING,
                     EstadoImportacion.COMMITTED, EstadoImportacion.FAILED)
        hojas = archivo if isinstance(archivo, list) else leer_libro(archivo)
        self.hojas = [h for h in hojas if h.filas]
        if self.repositorio is not None:
            # Sólo lectura: el tipo de respaldo se crea al confirmar
            nombre = self.config.clasificador.tipo_respaldo
            existentes = self.repositorio.select(TABLA_TIPOS, "id, name", eq={"name": nombre})
            ids = {t.get("id") for t in self.catalogos.tipos}
            nuevos = [t for t in existentes if t.get("id") not in ids]
            if nuevos:
                self.catalogos = Catalogos(tipos=list(self.catalogos.tipos) + nuevos, sedes=self.catalogos.sedes)
        self.mapeos = sugerir_mapeos(self.hojas, self.catalogos, self.config)
        self.resultado = None
        self.estado = EstadoImportacion.FILE_LOADED
        return self.mapeos

    def _mapeo(self, hoja):
        for m in self.mapeos:
            if m.hoja == hoja:
                return m
        raise ErrorImportacion(f"Hoja '{hoja}' no existe en el archivo")

    def cambiar_sede(self, hoja, sede_id):
        self._exigir(EstadoImportacion.FILE_LOADED, EstadoImportacion.PREVIEWING)
        self._mapeo(hoja).sede_id = sede_id or None

    def ignorar(self, hoja, ignorar=True):
        self._exigir(EstadoImportacion.FILE_LOADED, EstadoImportacion.PREVIEWING)
        self._mapeo(hoja).ignorar = ignorar

    def vista_previa(self):
        self._exigir(EstadoImportacion.FILE_LOADED, EstadoImportacion.PREVIEWING)
        self.estado = EstadoImportacion.PREVIEWING
        return calcular_vista_previa(self.hojas, self.mapeos, self.catalogos, self.config)

    def cancelar(self):
        self._exigir(EstadoImportacion.IDLE, EstadoImportacion.FILE_LOADED, EstadoImportacion.PREVIEWING,
                     EstadoImportacion.COMMITTED, EstadoImportacion.FAILED)
        self.hojas = []
        self.mapeos = []
        self.resultado = None
        self.estado = EstadoImportacion.IDLE

    def confirmar(self, repositorio=None):
        self._exigir(EstadoImportacion.FILE_LOADED, EstadoImportacion.PREVIEWING)
        repositorio = repositorio or self.repositorio
        if repositorio is None:
            raise ErrorImportacion("No hay conexión a la base de datos")
        vista = calcular_vista_previa(self.hojas, self.mapeos, self.catalogos, self.config)
        self.estado = EstadoImportacion.COMMITTING
        self.resultado = confirmar_importacion(vista, repositorio, self.config.tamano_lote)
        self.estado = EstadoImportacion.COMMITTED if self.resultado.exito else EstadoImportacion.FAILED
        return self.resultado
