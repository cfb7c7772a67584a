"""
Fixtures compartidos de la suite.

Provee:
- RepositorioMemoria: doble en memoria del Repositorio de Supabase, con
  errores de columna inexistente, duplicados y fallos inyectables
- Catálogos de tipos y sedes de ejemplo
"""
import copy
import itertools

import pytest

from database import ErrorPersistencia
from importacion import Catalogos, HojaCruda


class RepositorioMemoria:
    """Tablas como listas de dicts; mismos filtros eq / en / no_en que Repositorio."""

    def __init__(self, tablas=None, columnas_inexistentes=None):
        self.tablas = {t: [dict(f) for f in filas] for t, filas in (tablas or {}).items()}
        self.columnas_inexistentes = {t: set(c) for t, c in (columnas_inexistentes or {}).items()}
        # tabla -> número de llamada a insert (1-based) que debe fallar
        self.fallar_insert_en = {}
        self.fallar_select = set()
        self.fallar_update = set()
        self.llamadas = []
        self._ids = itertools.count(1000)
        self._inserts = {}

    def filas(self, tabla):
        return self.tablas.setdefault(tabla, [])

    def _validar_columnas(self, tabla, columnas):
        for col in columnas:
            if col in self.columnas_inexistentes.get(tabla, set()):
                raise ErrorPersistencia(f'column "{col}" of relation "{tabla}" does not exist', "42703")

    @staticmethod
    def _cumple(fila, eq, en, no_en):
        for col, val in (eq or {}).items():
            if fila.get(col) != val:
                return False
        for col, valores in (en or {}).items():
            if fila.get(col) not in valores:
                return False
        for col, valores in (no_en or {}).items():
            if fila.get(col) in valores:
                return False
        return True

    def select(self, tabla, columnas="*", eq=None, en=None, no_en=None):
        self.llamadas.append(("select", tabla))
        if tabla in self.fallar_select:
            raise ErrorPersistencia("timeout leyendo " + tabla)
        for valores in (no_en or {}).values():
            if not valores:
                raise ValueError("Filtro NOT IN vacío")
        nombres = None if columnas.strip() == "*" else [c.strip() for c in columnas.split(",")]
        self._validar_columnas(tabla, nombres or [])
        resultado = []
        for fila in self.filas(tabla):
            if self._cumple(fila, eq, en, no_en):
                resultado.append(dict(fila) if nombres is None else {c: fila.get(c) for c in nombres})
        return resultado

    def insert(self, tabla, filas):
        self.llamadas.append(("insert", tabla))
        n = self._inserts[tabla] = self._inserts.get(tabla, 0) + 1
        if self.fallar_insert_en.get(tabla) == n:
            raise ErrorPersistencia("connection reset by peer")
        for fila in filas:
            self._validar_columnas(tabla, fila.keys())
        if tabla == "asset_types":
            existentes = {f.get("name") for f in self.filas(tabla)}
            if any(f.get("name") in existentes for f in filas):
                raise ErrorPersistencia('duplicate key value violates unique constraint "asset_types_name_key"', "23505")
        creadas = []
        for fila in filas:
            nueva = copy.deepcopy(fila)
            nueva.setdefault("id", f"id-{next(self._ids)}")
            self.filas(tabla).append(nueva)
            creadas.append(dict(nueva))
        return creadas

    def update(self, tabla, cambios, eq=None):
        self.llamadas.append(("update", tabla))
        if not eq:
            raise ValueError("UPDATE sin filtro")
        if tabla in self.fallar_update:
            raise ErrorPersistencia("timeout actualizando " + tabla)
        self._validar_columnas(tabla, cambios.keys())
        actualizadas = []
        for fila in self.filas(tabla):
            if self._cumple(fila, eq, None, None):
                fila.update(cambios)
                actualizadas.append(dict(fila))
        return actualizadas

    def delete(self, tabla, eq=None, en=None, no_en=None):
        self.llamadas.append(("delete", tabla))
        if not (eq or en or no_en):
            raise ValueError("DELETE sin filtro")
        for valores in (no_en or {}).values():
            if not valores:
                raise ValueError("Filtro NOT IN vacío")
        borradas = [f for f in self.filas(tabla) if self._cumple(f, eq, en, no_en)]
        self.tablas[tabla] = [f for f in self.filas(tabla) if f not in borradas]
        return borradas


TIPOS = [
    {"id": "t-pc", "name": "PC"},
    {"id": "t-laptop", "name": "Laptop"},
    {"id": "t-monitor", "name": "Monitor"},
    {"id": "t-camara", "name": "Cámara"},
    {"id": "t-celular", "name": "Celular"},
    {"id": "t-impresora", "name": "Impresora"},
    {"id": "t-maquinaria", "name": "Maquinaria"},
]

SEDES = [
    {"id": "s-ica", "name": "Ica"},
    {"id": "s-scp-ica", "name": "San Cristobal del Peru Ica"},
    {"id": "s-pisco", "name": "Pisco"},
    {"id": "s-oficina", "name": "Oficina Principal"},
]


@pytest.fixture
def tipos():
    return [dict(t) for t in TIPOS]


@pytest.fixture
def sedes():
    return [dict(s) for s in SEDES]


@pytest.fixture
def catalogos(tipos, sedes):
    return Catalogos(tipos=tipos, sedes=sedes)


@pytest.fixture
def repo(tipos, sedes):
    return RepositorioMemoria({"asset_types": tipos, "locations": sedes, "assets": []})


@pytest.fixture
def hojas_ejemplo():
    """Libro de dos hojas: ICA (laptop, fila sin tipo, monitor) y DESCONOCIDA."""
    return [
        HojaCruda("ICA", [
            {"TIPO DE ACTIVO": "LAPTOP", "MARCA": "Lenovo", "MODELO": "T14", "SERIE": "PF3XYZ", "CONDICIÓN": "BUENO"},
            {"TIPO DE ACTIVO": None, "MARCA": "HP", "MODELO": "ProDesk", "SERIE": "MXL123"},
            {"TIPO DE ACTIVO": "MONITOR", "MARCA": "LG", "MODELO": "24MK430", "SERIE": 405123.0},
        ]),
        HojaCruda("DESCONOCIDA", [
            {"TIPO DE ACTIVO": "PC", "MARCA": "Dell", "MODELO": "Optiplex", "SERIE": "7XK2"},
        ]),
    ]
