"""
Tests de la carga masiva: lectura del libro, vista previa, confirmación por
lotes y máquina de estados de la sesión.
"""
from io import BytesIO

import openpyxl
import pytest

from conftest import RepositorioMemoria
from importacion import (
    Catalogos, ConfiguracionImportacion, EstadoImportacion, ErrorImportacion, HojaCruda, MapeoHoja,
    ResultadoImportacion, SesionImportacion, calcular_vista_previa, confirmar_importacion, leer_libro,
    sugerir_mapeos,
)


def _hoja(nombre, n, **extra):
    filas = []
    for i in range(n):
        fila = {"TIPO DE ACTIVO": "PC", "MARCA": "HP", "MODELO": "ProDesk", "SERIE": f"S{i:04d}"}
        fila.update(extra)
        filas.append(fila)
    return HojaCruda(nombre, filas)


def _vista(hoja, catalogos, sede_id="s-ica"):
    return calcular_vista_previa([hoja], [MapeoHoja(hoja.nombre, sede_id)], catalogos)


def _inserts(repo, tabla="assets"):
    return repo.llamadas.count(("insert", tabla))


# ============================================================================
# leer_libro
# ============================================================================

class TestLeerLibro:
    def test_descarta_hojas_vacias_y_columnas_sin_nombre(self):
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "ICA"
        ws.append(["TIPO DE ACTIVO", "MARCA", None, "SERIE"])
        ws.append(["PC", "HP", None, 12345])
        ws.append([None, None, None, None])
        ws.append(["MONITOR", "LG", None, "AB-1"])
        vacia = wb.create_sheet("VACIA")
        vacia.append(["TIPO DE ACTIVO", "MARCA"])
        out = BytesIO()
        wb.save(out)
        out.seek(0)

        hojas = leer_libro(out)

        assert [h.nombre for h in hojas] == ["ICA"]
        assert len(hojas[0].filas) == 2
        assert set(hojas[0].filas[0]) == {"TIPO DE ACTIVO", "MARCA", "SERIE"}
        assert hojas[0].filas[0]["SERIE"] == 12345
        assert hojas[0].numeros_fila == [2, 4]

    def test_diagnostico_usa_fila_real_de_excel(self, catalogos):
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "ICA"
        ws.append(["TIPO DE ACTIVO", "MARCA"])
        ws.append([None, None])
        ws.append([None, "HP"])
        out = BytesIO()
        wb.save(out)
        out.seek(0)

        hojas = leer_libro(out)
        vista = calcular_vista_previa(hojas, [MapeoHoja("ICA", "s-ica")], catalogos)

        assert vista.errores == ("Fila 3 de hoja 'ICA' sin tipo de activo",)


# ============================================================================
# Vista previa
# ============================================================================

class TestVistaPrevia:
    def test_libro_de_dos_hojas(self, hojas_ejemplo, catalogos):
        mapeos = sugerir_mapeos(hojas_ejemplo, catalogos)
        assert [(m.hoja, m.sede_id) for m in mapeos] == [("ICA", "s-ica"), ("DESCONOCIDA", None)]

        vista = calcular_vista_previa(hojas_ejemplo, mapeos, catalogos)

        assert vista.total_hojas == 2
        assert vista.total_registros == 4
        assert vista.registros_validos == 2
        assert vista.registros_invalidos == 2
        assert [r.tipo for r in vista.registros] == ["Laptop", "Monitor"]
        assert {r.location_id for r in vista.registros} == {"s-ica"}
        assert vista.registros[1].serial_number == "405123"
        assert vista.errores == (
            "Fila 3 de hoja 'ICA' sin tipo de activo",
            "Hoja 'DESCONOCIDA' sin sede asignada",
        )

    def test_es_pura(self, hojas_ejemplo, catalogos):
        mapeos = sugerir_mapeos(hojas_ejemplo, catalogos)
        primera = calcular_vista_previa(hojas_ejemplo, mapeos, catalogos)
        segunda = calcular_vista_previa(hojas_ejemplo, mapeos, catalogos)
        assert primera == segunda
        assert [r.a_payload() for r in primera.registros] == [r.a_payload() for r in segunda.registros]

    def test_hoja_ignorada_no_cuenta(self, hojas_ejemplo, catalogos):
        mapeos = [MapeoHoja("ICA", "s-ica"), MapeoHoja("DESCONOCIDA", None, ignorar=True)]
        vista = calcular_vista_previa(hojas_ejemplo, mapeos, catalogos)
        assert vista.total_hojas == 1
        assert vista.total_registros == 3
        assert vista.registros_invalidos == 1

    def test_asignar_sede_a_hoja_desconocida(self, hojas_ejemplo, catalogos):
        mapeos = [MapeoHoja("ICA", "s-ica"), MapeoHoja("DESCONOCIDA", "s-pisco")]
        vista = calcular_vista_previa(hojas_ejemplo, mapeos, catalogos)
        assert vista.registros_validos == 3
        assert vista.registros[-1].location_id == "s-pisco"

    def test_tipo_desconocido_sin_respaldo_es_invalido(self, catalogos):
        vista = _vista(_hoja("ICA", 1, **{"TIPO DE ACTIVO": "xyz"}), catalogos)
        assert vista.registros_invalidos == 1
        assert vista.errores == ("Tipo 'XYZ' no reconocido en hoja 'ICA'",)

    def test_tipo_desconocido_va_a_otros(self, catalogos):
        catalogos.tipos.append({"id": "t-otros", "name": "Otros"})
        vista = _vista(_hoja("ICA", 1, **{"TIPO DE ACTIVO": "xyz"}), catalogos)
        assert vista.registros_validos == 1
        assert vista.registros[0].asset_type_id == "t-otros"

    def test_errores_sin_repetir_y_limitados(self, catalogos):
        hoja = HojaCruda("ICA", [{"TIPO DE ACTIVO": None, "MARCA": "HP"} for _ in range(8)])
        hoja.filas.append({"TIPO DE ACTIVO": "xyz"})
        hoja.filas.append({"TIPO DE ACTIVO": "xyz"})
        vista = _vista(hoja, catalogos)
        assert vista.registros_invalidos == 10
        assert len(vista.errores) == 5
        assert len(set(vista.errores)) == 5

        config = ConfiguracionImportacion(max_errores=20)
        vista = calcular_vista_previa([hoja], [MapeoHoja("ICA", "s-ica")], catalogos, config)
        assert len(vista.errores) == 9


# ============================================================================
# Confirmación
# ============================================================================

class TestConfirmarImportacion:
    def test_inserta_por_lotes(self, catalogos, repo):
        vista = _vista(_hoja("ICA", 120), catalogos)
        resultado = confirmar_importacion(vista, repo, tamano_lote=50)
        assert resultado == ResultadoImportacion(exito=True, insertados=120)
        assert _inserts(repo) == 3
        assert len(repo.filas("assets")) == 120

    def test_crea_tipo_respaldo(self, catalogos, repo):
        confirmar_importacion(_vista(_hoja("ICA", 1), catalogos), repo)
        assert any(t["name"] == "Otros" for t in repo.filas("asset_types"))

    def test_sin_registros_validos_no_escribe(self, catalogos, repo):
        resultado = confirmar_importacion(_vista(_hoja("ICA", 3), catalogos, sede_id=None), repo)
        assert resultado.exito
        assert resultado.insertados == 0
        assert repo.llamadas == []

    def test_columna_inexistente_se_quita_y_reintenta(self, catalogos, tipos, sedes):
        repo = RepositorioMemoria({"asset_types": tipos, "locations": sedes}, {"assets": {"ram"}})
        vista = _vista(_hoja("ICA", 3, **{"MEMORIA RAM": "8GB"}), catalogos)
        resultado = confirmar_importacion(vista, repo)
        assert resultado.exito
        assert resultado.insertados == 3
        assert all("ram" not in f for f in repo.filas("assets"))

    def test_sin_columna_import_key(self, catalogos, tipos, sedes):
        repo = RepositorioMemoria({"asset_types": tipos, "locations": sedes}, {"assets": {"import_key"}})
        resultado = confirmar_importacion(_vista(_hoja("ICA", 60), catalogos), repo, tamano_lote=50)
        assert resultado.exito
        assert resultado.insertados == 60
        assert all("import_key" not in f for f in repo.filas("assets"))

    def test_fallo_devuelve_resultado_parcial(self, catalogos, repo):
        repo.fallar_insert_en["assets"] = 2
        resultado = confirmar_importacion(_vista(_hoja("ICA", 120), catalogos), repo, tamano_lote=50)
        assert not resultado.exito
        assert resultado.insertados == 50
        assert resultado.no_confirmados == 70
        assert resultado.error == "connection reset by peer"
        assert "70 registros no se pudieron confirmar" in resultado.advertencia
        assert _inserts(repo) == 2

    def test_reintento_no_duplica(self, catalogos, repo):
        vista = _vista(_hoja("ICA", 120), catalogos)
        repo.fallar_insert_en["assets"] = 2
        assert not confirmar_importacion(vista, repo, tamano_lote=50).exito

        resultado = confirmar_importacion(vista, repo, tamano_lote=50)

        assert resultado.exito
        assert resultado.omitidos == 50
        assert resultado.insertados == 70
        assert len(repo.filas("assets")) == 120
        assert len({f["import_key"] for f in repo.filas("assets")}) == 120

    def test_doble_confirmacion_no_duplica(self, catalogos, repo):
        vista = _vista(_hoja("ICA", 10), catalogos)
        confirmar_importacion(vista, repo)
        resultado = confirmar_importacion(vista, repo)
        assert resultado == ResultadoImportacion(exito=True, insertados=0, omitidos=10)
        assert len(repo.filas("assets")) == 10


# ============================================================================
# Sesión
# ============================================================================

class TestSesionImportacion:
    def test_flujo_completo(self, hojas_ejemplo, catalogos, repo):
        sesion = SesionImportacion(catalogos, repositorio=repo)
        assert sesion.estado == EstadoImportacion.IDLE

        mapeos = sesion.cargar(hojas_ejemplo)
        assert sesion.estado == EstadoImportacion.FILE_LOADED
        assert len(mapeos) == 2

        sesion.cambiar_sede("DESCONOCIDA", "s-pisco")
        vista = sesion.vista_previa()
        assert sesion.estado == EstadoImportacion.PREVIEWING
        assert vista.registros_validos == 3

        resultado = sesion.confirmar()
        assert resultado.exito
        assert sesion.estado == EstadoImportacion.COMMITTED
        assert len(repo.filas("assets")) == 3

    def test_cargar_no_escribe(self, hojas_ejemplo, catalogos, repo):
        sesion = SesionImportacion(catalogos, repositorio=repo)
        sesion.cargar(hojas_ejemplo)
        sesion.vista_previa()
        sesion.cancelar()
        assert not any(op in ("insert", "update", "delete") for op, _ in repo.llamadas)
        assert all(t["name"] != "Otros" for t in repo.filas("asset_types"))

    def test_cargar_incorpora_respaldo_existente(self, catalogos, repo):
        repo.filas("asset_types").append({"id": "t-otros", "name": "Otros"})
        sesion = SesionImportacion(catalogos, repositorio=repo)
        sesion.cargar([_hoja("ICA", 1, **{"TIPO DE ACTIVO": "xyz"})])
        vista = sesion.vista_previa()
        assert vista.registros_validos == 1
        assert vista.registros[0].asset_type_id == "t-otros"
        assert all(t["name"] != "Otros" for t in catalogos.tipos)

    def test_fallo_pasa_a_failed(self, hojas_ejemplo, catalogos, repo):
        repo.fallar_insert_en["assets"] = 1
        sesion = SesionImportacion(catalogos, repositorio=repo)
        sesion.cargar(hojas_ejemplo)
        resultado = sesion.confirmar()
        assert not resultado.exito
        assert sesion.estado == EstadoImportacion.FAILED
        assert resultado.no_confirmados == 2

        with pytest.raises(ErrorImportacion):
            sesion.confirmar()
        sesion.cargar(hojas_ejemplo)
        assert sesion.confirmar().exito

    def test_cancelar(self, hojas_ejemplo, catalogos):
        sesion = SesionImportacion(catalogos)
        sesion.cargar(hojas_ejemplo)
        sesion.cancelar()
        assert sesion.estado == EstadoImportacion.IDLE
        assert sesion.hojas == []

    def test_transiciones_invalidas(self, hojas_ejemplo, catalogos):
        sesion = SesionImportacion(catalogos)
        with pytest.raises(ErrorImportacion):
            sesion.vista_previa()
        with pytest.raises(ErrorImportacion):
            sesion.cambiar_sede("ICA", "s-ica")
        sesion.cargar(hojas_ejemplo)
        with pytest.raises(ErrorImportacion):
            sesion.cambiar_sede("NO EXISTE", "s-ica")
        with pytest.raises(ErrorImportacion):
            sesion.confirmar()

    def test_ignorar_hoja(self, hojas_ejemplo, catalogos):
        sesion = SesionImportacion(catalogos)
        sesion.cargar(hojas_ejemplo)
        sesion.ignorar("DESCONOCIDA")
        vista = sesion.vista_previa()
        assert vista.total_hojas == 1
        assert vista.errores == ("Fila 3 de hoja 'ICA' sin tipo de activo",)
