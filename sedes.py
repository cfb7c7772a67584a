# sedes.py
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from constantes import MAPEO_SEDES
from normalizacion import normalizar_encabezado

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfiguracionSedes:
    alias: Mapping[str, str] = field(default_factory=lambda: MappingProxyType(dict(MAPEO_SEDES)))


def _coincide(a, b):
    return a == b or a in b or b in a


class ResolvedorSedes:
    """
    Sugiere la sede de una hoja del Excel a partir de su nombre.

    Es sólo una sugerencia: el operador puede cambiarla antes de importar.
    Devuelve None cuando no hay coincidencia.
    """

    def __init__(self, sedes, config=None):
        self.config = config or ConfiguracionSedes()
        self.sedes = [(normalizar_encabezado(s.get("name")), s) for s in sedes if s.get("name")]
        self._alias = sorted(
            ((normalizar_encabezado(k), normalizar_encabezado(v)) for k, v in self.config.alias.items()),
            key=lambda kv: (-len(kv[0]), kv[0]),
        )

    def _por_substring(self, nombre):
        for clave, sede in self.sedes:
            if _coincide(clave, nombre):
                return sede
        return None

    def _por_destino(self, destino):
        for clave, sede in self.sedes:
            if clave == destino:
                return sede
        return self._por_substring(destino)

    def resolver(self, nombre_hoja):
        nombre = normalizar_encabezado(nombre_hoja)
        if not nombre:
            return None

        # 1. Coincidencia exacta
        for clave, sede in self.sedes:
            if clave == nombre:
                return sede["id"]

        # 2. Coincidencia parcial en cualquier sentido
        sede = self._por_substring(nombre)
        if sede:
            return sede["id"]

        # 3. Alias manual (el más largo primero: "SCP ICA" antes que "ICA")
        for alias, destino in self._alias:
            if alias in nombre:
                sede = self._por_destino(destino)
                if sede:
                    return sede["id"]

        logger.debug("Hoja '%s' sin sede sugerida", nombre_hoja)
        return None
