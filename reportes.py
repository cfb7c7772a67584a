# reportes.py
import re
import openpyxl
from openpyxl.worksheet.datavalidation import DataValidation
from openpyxl.styles import Font, PatternFill
from io import BytesIO
from datetime import datetime
from constantes import COLUMNAS_PLANTILLA, LISTAS_OPCIONES

COLOR_ENCABEZADO = "1F4E78"

ETIQUETAS_RESUMEN = {
    "total_activos": "Total activos",
    "total_sedes": "Total sedes",
    "total_tipos": "Total tipos de activo",
    "total_mantenimientos": "Total mantenimientos",
    "total_envios": "Total envíos",
}

ETIQUETAS_PROBLEMAS = {
    "activos_sin_sede": "Activos sin sede",
    "activos_estado_inconsistente": "Activos con estado inconsistente",
    "mantenimientos_huerfanos": "Mantenimientos huérfanos",
    "envios_huerfanos": "Envíos huérfanos",
}


def _encabezado(ws, columnas):
    ws.append(columnas)
    header_fill = PatternFill(start_color=COLOR_ENCABEZADO, end_color=COLOR_ENCABEZADO, fill_type="solid")
    for cell in ws[ws.max_row]:
        cell.font = Font(color="FFFFFF", bold=True)
        cell.fill = header_fill


def _titulo_hoja(nombre):
    return re.sub(r"[\\/*?:\[\]]", "-", str(nombre))[:31] or "SEDE"


def generar_plantilla_carga(nombres_sedes=None):
    """Plantilla .xlsx: una hoja por sede (el nombre de la hoja sugiere la sede)."""
    wb = openpyxl.Workbook()
    hojas = list(nombres_sedes or ["SEDE"])
    ws = wb.active
    ws.title = _titulo_hoja(hojas[0])
    for nombre in hojas[1:]:
        wb.create_sheet(_titulo_hoja(nombre))

    for ws in wb.worksheets:
        _encabezado(ws, COLUMNAS_PLANTILLA)
        # Validaciones para ayudar al usuario
        for col_name, opciones in LISTAS_OPCIONES.items():
            if col_name in COLUMNAS_PLANTILLA:
                col_idx = COLUMNAS_PLANTILLA.index(col_name) + 1
                letra = openpyxl.utils.get_column_letter(col_idx)
                formula = f'"{",".join(opciones)}"'
                dv = DataValidation(type="list", formula1=formula, allow_blank=True)
                ws.add_data_validation(dv)
                dv.add(f"{letra}2:{letra}1000")

    out = BytesIO()
    wb.save(out)
    return out.getvalue()


def exportar_reporte_integridad(reporte, fecha=None):
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Resumen"
    ws.append(["Reporte de integridad", (fecha or datetime.now()).strftime('%d/%m/%Y %H:%M')])
    ws["A1"].font = Font(bold=True, size=14)
    ws.append([])

    _encabezado(ws, ["Indicador", "Valor"])
    for clave, valor in reporte.resumen.items():
        ws.append([ETIQUETAS_RESUMEN.get(clave, clave), valor])
    ws.append([])

    _encabezado(ws, ["Problema", "Cantidad"])
    for clave, valor in reporte.problemas.items():
        ws.append([ETIQUETAS_PROBLEMAS.get(clave, clave), valor])
        if valor:
            ws.cell(row=ws.max_row, column=2).font = Font(color="C00000", bold=True)

    ws_rec = wb.create_sheet("Recomendaciones")
    _encabezado(ws_rec, ["Recomendación"])
    for texto in reporte.recomendaciones:
        ws_rec.append([texto])

    ws.column_dimensions["A"].width = 36
    ws_rec.column_dimensions["A"].width = 70

    out = BytesIO()
    wb.save(out)
    return out.getvalue()
