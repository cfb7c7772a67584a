import logging
import time

import pandas as pd
import plotly.express as px
import streamlit as st

from database import BitacoraAuditoria, ErrorPersistencia, Repositorio, init_supabase
from importacion import EstadoImportacion, SesionImportacion, cargar_catalogos
from integridad import ReconciliadorIntegridad
from reportes import ETIQUETAS_PROBLEMAS, exportar_reporte_integridad, generar_plantilla_carga

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

# --- CONFIGURACIÓN DE PÁGINA ---
st.set_page_config(page_title="Importación e Integridad de Inventario", layout="wide", page_icon="🖥️")

# --- ESTILOS CSS ---
st.markdown("""
    <style>
        .block-container { padding-top: 2rem !important; }
        .stTabs { margin-top: 0px !important; }
        hr { margin-top: 10px !important; margin-bottom: 10px !important; }
        .stAlert { padding-top: 0.5rem; padding-bottom: 0.5rem; }
    </style>
    """, unsafe_allow_html=True)

# --- CONFIGURACIÓN SUPABASE ---
supabase = init_supabase()

if not supabase:
    st.error("❌ Error Crítico: No se detectaron las credenciales de Supabase. Verifica tus 'secrets'.")
    st.stop()

repositorio = Repositorio(supabase)
bitacora = BitacoraAuditoria(repositorio, st.session_state.get("usuario_id"))


@st.cache_data(ttl=60)
def obtener_catalogos():
    return cargar_catalogos(repositorio)


def nueva_sesion():
    st.session_state.sesion_importacion = SesionImportacion(obtener_catalogos(), repositorio=repositorio)
    st.session_state.archivo_cargado = None


if "sesion_importacion" not in st.session_state:
    nueva_sesion()

# --- APLICACIÓN PRINCIPAL ---

st.title("🖥️ Importación e Integridad de Inventario")
tabs = st.tabs(["📥 Importar Excel", "🛡️ Integridad del Sistema"])

# 1. IMPORTAR
with tabs[0]:
    sesion = st.session_state.sesion_importacion
    catalogos = sesion.catalogos
    nombres_sedes = {s["id"]: s["name"] for s in catalogos.sedes}

    col_down, col_up = st.columns(2)
    with col_down:
        st.info("Paso 1: Descargue la plantilla (una hoja por sede).")
        plantilla = generar_plantilla_carga(list(nombres_sedes.values())[:5])
        st.download_button("📥 Descargar Plantilla .xlsx", data=plantilla, file_name="Plantilla_Carga.xlsx")

    with col_up:
        st.info("Paso 2: Suba el archivo con los datos.")
        upl_file = st.file_uploader("Subir Excel", type=["xlsx"])

    if upl_file is None and sesion.estado != EstadoImportacion.IDLE:
        nueva_sesion()
        st.rerun()

    if upl_file is not None and st.session_state.archivo_cargado != upl_file.name:
        try:
            sesion.cargar(upl_file)
            st.session_state.archivo_cargado = upl_file.name
        except ErrorPersistencia as e:
            st.error(f"Error preparando catálogos: {e.mensaje}")
        except Exception as e:
            st.error(f"Error al leer el archivo Excel: {e}")

    if sesion.estado in (EstadoImportacion.FILE_LOADED, EstadoImportacion.PREVIEWING):
        st.divider()
        st.markdown("#### Mapeo de Sedes por Hoja")
        opciones = [""] + list(nombres_sedes.keys())
        conteos = {h.nombre: len(h.filas) for h in sesion.hojas}

        for mapeo in sesion.mapeos:
            c1, c2, c3, c4 = st.columns([2, 1, 3, 1])
            c1.write(f"**{mapeo.hoja}**")
            c2.write(f"{conteos.get(mapeo.hoja, 0)} registros")
            actual = mapeo.sede_id if mapeo.sede_id in nombres_sedes else ""
            elegido = c3.selectbox(
                "Sede destino", opciones, index=opciones.index(actual),
                format_func=lambda x: nombres_sedes.get(x, "-- Seleccionar Sede --"),
                key=f"sede_{mapeo.hoja}", disabled=mapeo.ignorar, label_visibility="collapsed",
            )
            if (elegido or None) != mapeo.sede_id:
                sesion.cambiar_sede(mapeo.hoja, elegido)
            ignorar = c4.checkbox("Ignorar", value=mapeo.ignorar, key=f"ign_{mapeo.hoja}")
            if ignorar != mapeo.ignorar:
                sesion.ignorar(mapeo.hoja, ignorar)

        vista = sesion.vista_previa()

        st.divider()
        k1, k2, k3, k4 = st.columns(4)
        k1.metric("Hojas detectadas", vista.total_hojas)
        k2.metric("Total Registros", vista.total_registros)
        k3.metric("Listos para importar", vista.registros_validos)
        k4.metric("Inválidos / Sin Sede", vista.registros_invalidos)

        if vista.errores:
            with st.expander("⚠️ Alertas de validación", expanded=True):
                for err in vista.errores:
                    st.write(f"- {err}")

        if vista.registros:
            with st.expander("🔎 Registros a importar"):
                df_prev = pd.DataFrame([r.a_payload() for r in vista.registros])
                df_prev["location_id"] = df_prev["location_id"].map(nombres_sedes)
                st.dataframe(df_prev.drop(columns=["import_key"], errors="ignore"), use_container_width=True, hide_index=True)

        b1, b2 = st.columns([1, 4])
        if b1.button(f"💾 Importar {vista.registros_validos} Registros", disabled=vista.registros_validos == 0, type="primary"):
            with st.spinner("Importando..."):
                resultado = sesion.confirmar()
            if resultado.exito:
                st.success(f"✅ Proceso completado: {resultado.insertados} registros cargados ({resultado.omitidos} ya existían).")
                bitacora.registrar_log("IMPORT", "assets", None, {
                    "file": st.session_state.archivo_cargado,
                    "inserted": resultado.insertados,
                    "skipped": resultado.omitidos,
                })
                st.cache_data.clear()
                time.sleep(1.5)
                nueva_sesion()
                st.rerun()
            else:
                st.error(resultado.advertencia)
        if b2.button("Cancelar"):
            sesion.cancelar()
            nueva_sesion()
            st.rerun()

    elif sesion.estado == EstadoImportacion.FAILED and sesion.resultado:
        st.error(sesion.resultado.advertencia)
        if st.button("🔄 Reintentar con otro archivo"):
            nueva_sesion()
            st.rerun()

# 2. INTEGRIDAD
with tabs[1]:
    st.subheader("Integridad del Sistema")
    reconciliador = ReconciliadorIntegridad(repositorio, bitacora)

    a1, a2, a3 = st.columns(3)
    if a1.button("🔄 Sincronizar todos los activos", use_container_width=True):
        with st.spinner("Sincronizando..."):
            resumen = reconciliador.sincronizar_integridad_total()
        st.success(f"Procesados {resumen.procesados} activos: {resumen.incidencias} incidencias, {resumen.correcciones} correcciones.")
        if resumen.errores:
            st.warning(f"{resumen.errores} activos no pudieron validarse. Revise el log.")

    if a2.button("🧹 Limpiar datos huérfanos", use_container_width=True):
        limpieza = reconciliador.limpiar_datos_huerfanos()
        st.success(f"Eliminados {limpieza.mantenimientos_eliminados} mantenimientos y {limpieza.envios_eliminados} envíos huérfanos.")
        for err in limpieza.errores:
            st.warning(err)

    try:
        reporte = reconciliador.generar_reporte_integridad()
    except ErrorPersistencia as e:
        st.error(f"Error generando reporte: {e.mensaje}")
        reporte = None

    if reporte:
        a3.download_button("📄 Descargar Reporte", data=exportar_reporte_integridad(reporte),
                           file_name="Reporte_Integridad.xlsx", use_container_width=True)

        k1, k2, k3, k4, k5 = st.columns(5)
        k1.metric("Activos", reporte.resumen["total_activos"])
        k2.metric("Sedes", reporte.resumen["total_sedes"])
        k3.metric("Tipos", reporte.resumen["total_tipos"])
        k4.metric("Mantenimientos", reporte.resumen["total_mantenimientos"])
        k5.metric("Envíos", reporte.resumen["total_envios"])

        st.divider()
        g1, g2 = st.columns(2)
        with g1:
            bar_data = pd.DataFrame({
                "Problema": [ETIQUETAS_PROBLEMAS[k] for k in reporte.problemas],
                "Cantidad": list(reporte.problemas.values()),
            })
            st.plotly_chart(px.bar(bar_data, x="Cantidad", y="Problema", orientation='h', title="Problemas detectados"), use_container_width=True)
        with g2:
            st.markdown("#### Recomendaciones")
            for texto in reporte.recomendaciones:
                if reporte.total_problemas:
                    st.warning(texto)
                else:
                    st.success(texto)
