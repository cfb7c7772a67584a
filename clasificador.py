# clasificador.py
"""
Clasificación de etiquetas libres de "tipo de activo" contra el catálogo
`asset_types`: coincidencia exacta, luego palabras clave (las más largas y
específicas primero) y por último el tipo de respaldo "Otros".
"""
import logging
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from constantes import MAPEO_TIPOS, PRIORIDAD_TIPOS, TABLA_TIPOS, TIPO_RESPALDO
from database import ErrorPersistencia
from normalizacion import normalizar_encabezado

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfiguracionClasificador:
    palabras_clave: Mapping[str, str] = field(default_factory=lambda: MappingProxyType(dict(MAPEO_TIPOS)))
    prioridades: Mapping[str, int] = field(default_factory=lambda: MappingProxyType(dict(PRIORIDAD_TIPOS)))
    tipo_respaldo: str = TIPO_RESPALDO

    def orden_palabras(self):
        """Palabras clave normalizadas: más largas primero, desempate por prioridad."""
        claves = {normalizar_encabezado(k): v for k, v in self.palabras_clave.items()}
        prioridades = {normalizar_encabezado(k): p for k, p in self.prioridades.items()}
        return sorted(claves.items(), key=lambda kv: (-len(kv[0]), -prioridades.get(kv[0], 0), kv[0]))


def _patron_palabra(clave):
    # Palabra completa o con plural simple: MONITOR -> MONITORES, nunca TOPCO -> PC
    return re.compile(r"(?<!\w)" + re.escape(clave) + r"(?:ES|S)?(?!\w)")


def asegurar_tipo_respaldo(repositorio, nombre=TIPO_RESPALDO):
    """
    Devuelve la fila de `asset_types` del tipo de respaldo, creándola si falta.

    Si dos sesiones lo crean a la vez, el error de duplicado se resuelve
    volviendo a leer la fila existente.
    """
    existentes = repositorio.select(TABLA_TIPOS, "id, name", eq={"name": nombre})
    if existentes:
        return existentes[0]
    try:
        creados = repositorio.insert(TABLA_TIPOS, [{"name": nombre}])
        if creados:
            logger.info("Tipo de activo '%s' creado", nombre)
            return creados[0]
    except ErrorPersistencia as e:
        if not e.es_duplicado():
            raise
        logger.info("Tipo '%s' creado en paralelo, releyendo", nombre)
    existentes = repositorio.select(TABLA_TIPOS, "id, name", eq={"name": nombre})
    if not existentes:
        raise ErrorPersistencia(f"No se pudo obtener el tipo de activo '{nombre}'")
    return existentes[0]


class ClasificadorTipos:

    def __init__(self, tipos, config=None, repositorio=None):
        self.config = config or ConfiguracionClasificador()
        self.tipos = list(tipos)
        self.repositorio = repositorio
        self._palabras = [(clave, _patron_palabra(clave), destino) for clave, destino in self.config.orden_palabras()]

    def _buscar(self, nombre):
        objetivo = normalizar_encabezado(nombre)
        for tipo in self.tipos:
            if normalizar_encabezado(tipo.get("name")) == objetivo:
                return tipo
        return None

    def respaldo(self):
        tipo = self._buscar(self.config.tipo_respaldo)
        if tipo is None and self.repositorio is not None:
            tipo = asegurar_tipo_respaldo(self.repositorio, self.config.tipo_respaldo)
            self.tipos.append(tipo)
        if tipo is None:
            return None, self.config.tipo_respaldo
        return tipo["id"], tipo["name"]

    def clasificar(self, etiqueta):
        """Devuelve (type_id, nombre_canonico). Nunca falla: lo peor es el respaldo."""
        texto = normalizar_encabezado(etiqueta)
        if texto:
            exacto = self._buscar(texto)
            if exacto:
                return exacto["id"], exacto["name"]

            for _, patron, destino in self._palabras:
                if patron.search(texto):
                    tipo = self._buscar(destino)
                    if tipo:
                        return tipo["id"], tipo["name"]

        try:
            return self.respaldo()
        except ErrorPersistencia as e:
            logger.error("No se pudo asegurar el tipo '%s': %s", self.config.tipo_respaldo, e)
            return None, self.config.tipo_respaldo
