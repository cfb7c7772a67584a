# mapeo.py
"""
Proyección de una fila normalizada del Excel sobre la forma de `assets`.

Cada categoría de tipo (PC/Laptop, Cámara/DVR, Celular, ...) aporta un
bloque de columnas propio, modelado como una variante con sus campos
opcionales. La variante se elige sólo por el nombre canónico del tipo.
"""
import hashlib
from dataclasses import dataclass, field, fields
from datetime import date
from typing import Optional

from constantes import (
    COLUMNAS_CONDICION, COLUMNAS_MARCA, COLUMNAS_MODELO, COLUMNAS_NOTAS,
    COLUMNAS_SERIE, VALOR_GENERICO, VOCABULARIO_BAJA, VOCABULARIO_MANTENIMIENTO,
)
from normalizacion import (
    normalizar_cantidad, normalizar_encabezado, normalizar_fecha, normalizar_texto,
)


def normalizar_fila(fila):
    """Claves en mayúsculas y sin tildes; valores intactos."""
    return {normalizar_encabezado(k): v for k, v in fila.items() if k is not None}


def primer_valor(fila, columnas, normalizador=normalizar_texto):
    """Primer valor no vacío entre varias grafías de la misma columna."""
    for col in columnas:
        valor = normalizador(fila.get(normalizar_encabezado(col)))
        if valor is not None:
            return valor
    return None


def _contiene(texto, vocabulario):
    return any(normalizar_encabezado(palabra) in texto for palabra in vocabulario)


def derivar_estado(condicion):
    texto = normalizar_encabezado(condicion)
    if not texto:
        return "active"
    if _contiene(texto, VOCABULARIO_MANTENIMIENTO):
        return "maintenance"
    if _contiene(texto, VOCABULARIO_BAJA):
        return "inactive"
    return "active"


# --- VARIANTES POR CATEGORÍA ---

def _campo(*alias, columna=None, tipo="texto", defecto=None):
    return field(default=None, metadata={"alias": alias, "columna": columna, "tipo": tipo, "defecto": defecto})


class Extension:
    """Base de los bloques específicos por categoría."""

    @classmethod
    def desde_fila(cls, fila):
        valores = {}
        for f in fields(cls):
            meta = f.metadata
            if meta["tipo"] == "cantidad":
                valores[f.name] = primer_valor(fila, meta["alias"], lambda v: normalizar_cantidad(v, None))
                if valores[f.name] is None:
                    valores[f.name] = meta["defecto"]
            elif meta["tipo"] == "fecha":
                valores[f.name] = primer_valor(fila, meta["alias"], normalizar_fecha)
            else:
                valores[f.name] = primer_valor(fila, meta["alias"])
        return cls(**valores)

    def columnas(self):
        datos = {}
        for f in fields(self):
            valor = getattr(self, f.name)
            if valor is None:
                continue
            if isinstance(valor, date):
                valor = valor.isoformat()
            datos[f.metadata["columna"] or f.name] = valor
        return datos


@dataclass(frozen=True)
class ExtensionComputo(Extension):
    processor: Optional[str] = _campo("PROCESADOR", "PROCESSOR", "CPU MODELO")
    ram: Optional[str] = _campo("RAM", "MEMORIA RAM", "MEMORIA")
    operating_system: Optional[str] = _campo("SISTEMA OPERATIVO", "SO", "OS")
    bios_mode: Optional[str] = _campo("MODO BIOS", "BIOS", "BIOS MODE")
    area: Optional[str] = _campo("AREA", "ÁREA")
    placa: Optional[str] = _campo("PLACA", "CODIGO PATRIMONIAL", "ACTIVO", "NUEVO ACTIVO")
    anydesk_id: Optional[str] = _campo("ANYDESK", "ANYDESK ID")
    ip_address: Optional[str] = _campo("IP", "DIRECCION IP")


@dataclass(frozen=True)
class ExtensionCamara(Extension):
    ip_address: Optional[str] = _campo("IP", "DIRECCION IP")
    url: Optional[str] = _campo("URL", "ENLACE")
    username: Optional[str] = _campo("USUARIO", "USER")
    password: Optional[str] = _campo("CONTRASEÑA", "CLAVE", "PASSWORD")
    port: Optional[str] = _campo("PUERTO", "PORT")


@dataclass(frozen=True)
class ExtensionCelular(Extension):
    imei: Optional[str] = _campo("IMEI")
    operator: Optional[str] = _campo("OPERADOR", "OPERADORA", "COMPAÑIA")
    phone_number: Optional[str] = _campo("NUMERO", "TELEFONO", "N° CELULAR", "NUMERO CELULAR")
    data_plan: Optional[str] = _campo("PLAN", "PLAN DE DATOS")


@dataclass(frozen=True)
class ExtensionImpresion(Extension):
    tipo_impresion: Optional[str] = _campo("TIPO IMPRESION", "TIPO DE IMPRESION")
    tecnologia_impresion: Optional[str] = _campo("TECNOLOGIA", "TECNOLOGIA IMPRESION", "TINTA")
    velocidad_impresion: Optional[str] = _campo("VELOCIDAD", "PPM")
    resolucion: Optional[str] = _campo("RESOLUCION", "DPI")


@dataclass(frozen=True)
class ExtensionPantalla(Extension):
    tamano_pantalla: Optional[str] = _campo("TAMAÑO", "TAMAÑO PANTALLA", "PULGADAS", columna="tamaño_pantalla")
    resolucion_pantalla: Optional[str] = _campo("RESOLUCION", "RESOLUCION PANTALLA")
    tipo_conexion: Optional[str] = _campo("CONEXION", "TIPO CONEXION", "PUERTOS")
    luminosidad: Optional[str] = _campo("LUMINOSIDAD", "LUMENES")


@dataclass(frozen=True)
class ExtensionMaquinaria(Extension):
    item: Optional[str] = _campo("ITEM")
    descripcion: Optional[str] = _campo("DESCRIPCIÓN", "DESCRIPCION")
    unidad_medida: Optional[str] = _campo("UNIDAD DE MEDIDA", "UNIDAD", "UM")
    cantidad: Optional[float] = _campo("CANTIDAD", "CANT", tipo="cantidad", defecto=1)
    color: Optional[str] = _campo("COLOR")
    gama: Optional[str] = _campo("GAMA")
    fecha_adquisicion: Optional[date] = _campo("FECHA ADQUISICION", "FECHA DE ADQUISICIÓN", tipo="fecha")
    valor_estimado: Optional[float] = _campo("VALOR ESTIMADO", "VALOR", "COSTO", tipo="cantidad")


EXTENSIONES_POR_TIPO = {
    "PC": ExtensionComputo,
    "LAPTOP": ExtensionComputo,
    "CAMARA": ExtensionCamara,
    "DVR": ExtensionCamara,
    "CELULAR": ExtensionCelular,
    "IMPRESORA": ExtensionImpresion,
    "ESCANER": ExtensionImpresion,
    "MONITOR": ExtensionPantalla,
    "PROYECTOR": ExtensionPantalla,
    "MAQUINARIA": ExtensionMaquinaria,
}


def extension_para(nombre_tipo):
    return EXTENSIONES_POR_TIPO.get(normalizar_encabezado(nombre_tipo))


# --- REGISTRO NORMALIZADO ---

@dataclass(frozen=True)
class RegistroActivo:
    asset_type_id: Optional[str]
    location_id: Optional[str]
    brand: str
    model: str
    serial_number: Optional[str]
    status: str
    notes: str
    tipo: Optional[str] = None
    extension: Optional[Extension] = None
    hoja: str = ""
    fila: int = 0
    import_key: str = ""

    @property
    def es_valido(self):
        return self.asset_type_id is not None and self.location_id is not None

    def a_payload(self):
        datos = {
            "asset_type_id": self.asset_type_id,
            "location_id": self.location_id,
            "brand": self.brand,
            "model": self.model,
            "serial_number": self.serial_number or "",
            "status": self.status,
            "notes": self.notes,
        }
        if self.extension is not None:
            for col, valor in self.extension.columnas().items():
                datos.setdefault(col, valor)
        if self.import_key:
            datos["import_key"] = self.import_key
        return datos


def clave_importacion(hoja, indice, tipo_id, sede_id, serie, marca, modelo):
    base = "|".join(str(x) if x is not None else "" for x in (hoja, indice, tipo_id, sede_id, serie, marca, modelo))
    return hashlib.sha1(base.encode("utf-8")).hexdigest()


def construir_notas(fila):
    partes = []
    for etiqueta, columnas in COLUMNAS_NOTAS:
        if etiqueta == "Adquirido":
            valor = primer_valor(fila, columnas, normalizar_fecha)
            if valor is None:
                valor = primer_valor(fila, columnas)
        else:
            valor = primer_valor(fila, columnas)
        if valor is not None:
            partes.append(f"{etiqueta}: {valor.isoformat() if isinstance(valor, date) else valor}")
    return " | ".join(partes)


def mapear_fila(fila, tipo_id, nombre_tipo, sede_id, hoja="", indice=0):
    """
    Convierte una fila (claves ya normalizadas) en un RegistroActivo.

    Siempre llena los campos comunes; el bloque específico depende sólo
    de `nombre_tipo`.
    """
    marca = primer_valor(fila, COLUMNAS_MARCA) or VALOR_GENERICO
    modelo = primer_valor(fila, COLUMNAS_MODELO) or VALOR_GENERICO
    serie = primer_valor(fila, COLUMNAS_SERIE)
    estado = derivar_estado(primer_valor(fila, COLUMNAS_CONDICION))

    clase = extension_para(nombre_tipo) if nombre_tipo else None
    extension = clase.desde_fila(fila) if clase else None

    return RegistroActivo(
        asset_type_id=tipo_id,
        location_id=sede_id,
        brand=marca,
        model=modelo,
        serial_number=serie,
        status=estado,
        notes=construir_notas(fila),
        tipo=nombre_tipo,
        extension=extension,
        hoja=hoja,
        fila=indice,
        import_key=clave_importacion(hoja, indice, tipo_id, sede_id, serie, marca, modelo),
    )
