# integridad.py
"""
Conciliación entre activos y su historial de mantenimientos y envíos.

- Un activo con mantenimiento `pending`/`in_progress` debe estar en `maintenance`.
- Un activo con un envío `in_transit` debe estar en `maintenance`.
- Un envío `delivered` fija la sede del activo en la sede destino.

Las escrituras son de mejor esfuerzo: un error se registra y el barrido
continúa con el siguiente activo.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from constantes import (
    ESTADO_ENVIO_ENTREGADO, ESTADO_ENVIO_EN_TRANSITO, ESTADOS_MANTENIMIENTO_ACTIVO,
    TABLA_ACTIVOS, TABLA_ENVIOS, TABLA_MANTENIMIENTOS, TABLA_SEDES, TABLA_TIPOS,
)
from database import BitacoraAuditoria, ErrorPersistencia, ahora_iso

logger = logging.getLogger(__name__)

ESTADO_POR_MANTENIMIENTO = {
    "pending": "maintenance",
    "in_progress": "maintenance",
    "completed": "active",
}

MENSAJE_SISTEMA_SANO = "Sistema en buen estado - no se requieren acciones"


@dataclass
class IncidenciaIntegridad:
    activo_id: str
    tipo: str
    descripcion: str
    corregida: bool = False


@dataclass
class ResultadoIntegridad:
    es_valido: bool
    incidencias: List[IncidenciaIntegridad] = field(default_factory=list)
    correcciones: List[str] = field(default_factory=list)


@dataclass
class ResumenSincronizacion:
    procesados: int = 0
    incidencias: int = 0
    correcciones: int = 0
    errores: int = 0


@dataclass
class ReporteIntegridad:
    resumen: dict
    problemas: dict
    recomendaciones: List[str]

    @property
    def total_problemas(self):
        return sum(self.problemas.values())


@dataclass
class ResultadoLimpieza:
    mantenimientos_eliminados: int = 0
    envios_eliminados: int = 0
    errores: List[str] = field(default_factory=list)


class ReconciliadorIntegridad:

    def __init__(self, repositorio, bitacora: Optional[BitacoraAuditoria] = None):
        self.repositorio = repositorio
        self.bitacora = bitacora or BitacoraAuditoria(repositorio)

    def _actualizar_activo(self, activo_id, cambios):
        """UPDATE con un único reintento si alguna columna no existe (p. ej. updated_at)."""
        try:
            return self.repositorio.update(TABLA_ACTIVOS, cambios, eq={"id": activo_id})
        except ErrorPersistencia as e:
            columna = e.columna_inexistente()
            if not e.es_columna_inexistente() or columna not in cambios:
                raise
            logger.warning("Columna '%s' no existe en %s; reintentando sin ella", columna, TABLA_ACTIVOS)
            reducido = {k: v for k, v in cambios.items() if k != columna}
        return self.repositorio.update(TABLA_ACTIVOS, reducido, eq={"id": activo_id})

    def _leer_activo(self, activo_id, columnas="*"):
        filas = self.repositorio.select(TABLA_ACTIVOS, columnas, eq={"id": activo_id})
        return filas[0] if filas else None

    # --- SINCRONIZACIONES PUNTUALES ---

    def sincronizar_estado_mantenimiento(self, activo_id, estado_mantenimiento):
        nuevo = ESTADO_POR_MANTENIMIENTO.get(estado_mantenimiento)
        if nuevo is None:
            logger.warning("Estado de mantenimiento desconocido: %s", estado_mantenimiento)
            return False
        try:
            activo = self._leer_activo(activo_id, "id, status")
            if activo is None:
                logger.warning("Activo %s no encontrado; no se sincroniza su estado", activo_id)
                return False
            anterior = activo.get("status")
            self._actualizar_activo(activo_id, {"status": nuevo, "updated_at": ahora_iso()})
        except ErrorPersistencia as e:
            logger.error("Error sincronizando estado del activo %s: %s", activo_id, e)
            return False

        self.bitacora.registrar_log("SYNC", TABLA_ACTIVOS, activo_id, {
            "action": "maintenance_status_sync",
            "maintenance_status": estado_mantenimiento,
            "old_asset_status": anterior,
            "new_asset_status": nuevo,
        })
        return True

    def actualizar_ubicacion_activo(self, activo_id, sede_id, detalles=None):
        try:
            activo = self._leer_activo(activo_id, "id, location_id, brand, model")
            self._actualizar_activo(activo_id, {"location_id": sede_id, "updated_at": ahora_iso()})
        except ErrorPersistencia as e:
            logger.error("Error actualizando sede del activo %s: %s", activo_id, e)
            return False

        registro = {
            "field": "location_id",
            "old_value": activo.get("location_id") if activo else None,
            "new_value": sede_id,
        }
        if activo:
            registro["asset_info"] = f"{activo.get('brand') or ''} {activo.get('model') or ''}".strip()
        registro.update(detalles or {})
        self.bitacora.registrar_log("SYNC" if detalles else "UPDATE", TABLA_ACTIVOS, activo_id, registro)
        return True

    def sincronizar_ubicacion_envio(self, envio_id):
        """Mueve el activo a la sede destino sólo si el envío está entregado."""
        try:
            envios = self.repositorio.select(TABLA_ENVIOS, "id, asset_id, to_location_id, status", eq={"id": envio_id})
        except ErrorPersistencia as e:
            logger.error("Error leyendo envío %s: %s", envio_id, e)
            return False
        if not envios:
            logger.error("Envío %s no encontrado", envio_id)
            return False

        envio = envios[0]
        if envio.get("status") != ESTADO_ENVIO_ENTREGADO:
            return True
        return self.actualizar_ubicacion_activo(envio["asset_id"], envio.get("to_location_id"), {
            "action": "shipment_location_sync",
            "shipment_id": envio_id,
        })

    # --- VALIDACIÓN ---

    def validar_integridad_activo(self, activo_id):
        incidencias = []
        correcciones = []
        try:
            activo = self._leer_activo(activo_id)
            if activo is None:
                return ResultadoIntegridad(False, [IncidenciaIntegridad(activo_id, "activo_inexistente", "Activo no encontrado")])
            mantenimientos = self.repositorio.select(TABLA_MANTENIMIENTOS, "id, status", eq={"asset_id": activo_id})
            envios = self.repositorio.select(TABLA_ENVIOS, "id, status", eq={"asset_id": activo_id})
            tipo = None
            if activo.get("asset_type_id"):
                tipo = self.repositorio.select(TABLA_TIPOS, "id", eq={"id": activo["asset_type_id"]})
        except ErrorPersistencia as e:
            logger.error("Error validando activo %s: %s", activo_id, e)
            return ResultadoIntegridad(False, [IncidenciaIntegridad(activo_id, "error_validacion", f"Error de validación: {e.mensaje}")])

        estado = activo.get("status")

        # Requieren intervención del operador: no se corrigen solas
        if not tipo:
            incidencias.append(IncidenciaIntegridad(activo_id, "sin_tipo", "Tipo de activo no encontrado: crear o asignar tipo"))
        if not activo.get("location_id") and estado != "extracted":
            incidencias.append(IncidenciaIntegridad(activo_id, "sin_sede", "Activo sin sede asignada: asignar sede"))

        corregibles = []
        if estado != "maintenance":
            if any(m.get("status") in ESTADOS_MANTENIMIENTO_ACTIVO for m in mantenimientos):
                corregibles.append(IncidenciaIntegridad(
                    activo_id, "mantenimiento_activo", "Activo con mantenimiento activo pero estado distinto de maintenance"))
            if any(e.get("status") == ESTADO_ENVIO_EN_TRANSITO for e in envios):
                corregibles.append(IncidenciaIntegridad(
                    activo_id, "envio_en_transito", "Activo con envío en tránsito pero estado distinto de maintenance"))

        if corregibles:
            try:
                self._actualizar_activo(activo_id, {"status": "maintenance", "updated_at": ahora_iso()})
                for inc in corregibles:
                    inc.corregida = True
                correcciones.append("✓ Corregido automáticamente: estado del activo actualizado a maintenance")
                self.bitacora.registrar_log("SYNC", TABLA_ACTIVOS, activo_id, {
                    "action": "integrity_auto_fix",
                    "old_asset_status": estado,
                    "new_asset_status": "maintenance",
                    "reasons": [inc.tipo for inc in corregibles],
                })
            except ErrorPersistencia as e:
                logger.error("No se pudo corregir el estado del activo %s: %s", activo_id, e)
            incidencias.extend(corregibles)

        return ResultadoIntegridad(not incidencias, incidencias, correcciones)

    def sincronizar_integridad_total(self):
        """Recorre todos los activos; costo O(activos x registros relacionados)."""
        resumen = ResumenSincronizacion()
        try:
            activos = self.repositorio.select(TABLA_ACTIVOS, "id")
        except ErrorPersistencia as e:
            logger.error("Error obteniendo activos para sincronizar: %s", e)
            resumen.errores += 1
            return resumen

        for activo in activos:
            resultado = self.validar_integridad_activo(activo["id"])
            resumen.procesados += 1
            if not resultado.es_valido:
                resumen.incidencias += len(resultado.incidencias)
                resumen.correcciones += len(resultado.correcciones)
                resumen.errores += sum(1 for i in resultado.incidencias if i.tipo == "error_validacion")

        logger.info("Sincronización total: %s", resumen)
        return resumen

    # --- REPORTE Y LIMPIEZA ---

    def generar_reporte_integridad(self):
        activos = self.repositorio.select(TABLA_ACTIVOS, "id, location_id, status")
        sedes = self.repositorio.select(TABLA_SEDES, "id")
        tipos = self.repositorio.select(TABLA_TIPOS, "id")
        mantenimientos = self.repositorio.select(TABLA_MANTENIMIENTOS, "id, asset_id, status")
        envios = self.repositorio.select(TABLA_ENVIOS, "id, asset_id, status")

        ids = {a["id"] for a in activos}
        ocupados = {m.get("asset_id") for m in mantenimientos if m.get("status") in ESTADOS_MANTENIMIENTO_ACTIVO}
        ocupados |= {e.get("asset_id") for e in envios if e.get("status") == ESTADO_ENVIO_EN_TRANSITO}

        problemas = {
            "activos_sin_sede": sum(1 for a in activos if not a.get("location_id") and a.get("status") != "extracted"),
            "activos_estado_inconsistente": sum(1 for a in activos if a["id"] in ocupados and a.get("status") != "maintenance"),
            "mantenimientos_huerfanos": sum(1 for m in mantenimientos if m.get("asset_id") not in ids),
            "envios_huerfanos": sum(1 for e in envios if e.get("asset_id") not in ids),
        }

        recomendaciones = []
        if problemas["activos_sin_sede"]:
            recomendaciones.append(f"Asignar ubicaciones a {problemas['activos_sin_sede']} activos sin ubicación")
        if problemas["activos_estado_inconsistente"]:
            recomendaciones.append(f"Corregir estado de {problemas['activos_estado_inconsistente']} activos con estado inconsistente")
        if problemas["mantenimientos_huerfanos"]:
            recomendaciones.append(f"Eliminar {problemas['mantenimientos_huerfanos']} registros de mantenimiento huérfanos")
        if problemas["envios_huerfanos"]:
            recomendaciones.append(f"Eliminar {problemas['envios_huerfanos']} envíos huérfanos")
        if not recomendaciones:
            recomendaciones.append(MENSAJE_SISTEMA_SANO)

        return ReporteIntegridad(
            resumen={
                "total_activos": len(activos),
                "total_sedes": len(sedes),
                "total_tipos": len(tipos),
                "total_mantenimientos": len(mantenimientos),
                "total_envios": len(envios),
            },
            problemas=problemas,
            recomendaciones=recomendaciones,
        )

    def limpiar_datos_huerfanos(self):
        resultado = ResultadoLimpieza()
        try:
            ids = [a["id"] for a in self.repositorio.select(TABLA_ACTIVOS, "id")]
        except ErrorPersistencia as e:
            resultado.errores.append(f"Error obteniendo activos: {e.mensaje}")
            return resultado

        if not ids:
            # NOT IN () borraría todas las filas
            mensaje = "No hay activos registrados; se omite la limpieza de huérfanos"
            logger.warning(mensaje)
            resultado.errores.append(mensaje)
            return resultado

        for tabla, atributo, etiqueta in (
            (TABLA_MANTENIMIENTOS, "mantenimientos_eliminados", "registros de mantenimiento"),
            (TABLA_ENVIOS, "envios_eliminados", "envíos"),
        ):
            try:
                huerfanos = self.repositorio.select(tabla, "id", no_en={"asset_id": ids})
                if not huerfanos:
                    continue
                self.repositorio.delete(tabla, no_en={"asset_id": ids})
                setattr(resultado, atributo, len(huerfanos))
                self.bitacora.registrar_log("CLEANUP", tabla, None, {
                    "action": "orphan_cleanup",
                    "deleted": len(huerfanos),
                })
            except ErrorPersistencia as e:
                logger.error("Error eliminando %s huérfanos: %s", etiqueta, e)
                resultado.errores.append(f"Error eliminando {etiqueta} huérfanos: {e.mensaje}")

        return resultado

    def obtener_estadisticas_sistema(self):
        activos = self.repositorio.select(TABLA_ACTIVOS, "id, status")
        pendientes = self.repositorio.select(TABLA_MANTENIMIENTOS, "id", eq={"status": "pending"})
        en_transito = self.repositorio.select(TABLA_ENVIOS, "id", eq={"status": ESTADO_ENVIO_EN_TRANSITO})
        return {
            "total_activos": len(activos),
            "activos_operativos": sum(1 for a in activos if a.get("status") == "active"),
            "mantenimientos_pendientes": len(pendientes),
            "envios_en_transito": len(en_transito),
        }
