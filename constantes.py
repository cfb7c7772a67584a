# constantes.py

# --- ESTADOS ---
ESTADOS_MANTENIMIENTO_ACTIVO = ["pending", "in_progress"]
ESTADO_ENVIO_EN_TRANSITO = "in_transit"
ESTADO_ENVIO_ENTREGADO = "delivered"

# --- TABLAS ---
TABLA_ACTIVOS = "assets"
TABLA_TIPOS = "asset_types"
TABLA_SEDES = "locations"
TABLA_MANTENIMIENTOS = "maintenance_records"
TABLA_ENVIOS = "shipments"
TABLA_AUDITORIA = "audit_logs"

# --- IMPORTACIÓN ---
TAMANO_LOTE = 50
MAX_ERRORES_VISTA_PREVIA = 5
TIPO_RESPALDO = "Otros"

# Variaciones comunes -> nombre exacto de BD
MAPEO_TIPOS = {
    # PC
    "COMPUTADORA": "PC", "ORDENADOR": "PC", "DESKTOP": "PC", "CPU": "PC",
    "PC": "PC", "ALL IN ONE": "PC", "AIO": "PC", "TORRE": "PC",
    # Laptop
    "LAPTOP": "Laptop", "PORTATIL": "Laptop", "NOTEBOOK": "Laptop",
    # Celular
    "CELULAR": "Celular", "TELEFONO": "Celular", "SMARTPHONE": "Celular", "MOVIL": "Celular",
    # Impresión
    "IMPRESORA": "Impresora", "MULTIFUNCIONAL": "Impresora",
    "SCANNER": "Escáner", "ESCANER": "Escáner",
    # Pantallas
    "MONITOR": "Monitor", "PANTALLA": "Monitor",
    "PROYECTOR": "Proyector", "DATA": "Proyector",
    # Video vigilancia
    "CAMARA": "Cámara", "DVR": "DVR", "NVR": "DVR", "GRABADOR": "DVR",
    # Red y energía
    "SWITCH": "Switch", "FUENTE": "Fuente de Poder",
    # Periféricos
    "TECLADO": "Periféricos", "MOUSE": "Periféricos", "MOUSEPAD": "Periféricos",
    # Maquinaria
    "MAQUINARIA": "Maquinaria", "MAQUINA": "Maquinaria",
}

# Desempate entre palabras clave del mismo largo (mayor gana)
PRIORIDAD_TIPOS = {
    "MONITOR": 10,
    "IMPRESORA": 9,
    "PROYECTOR": 9,
    "LAPTOP": 8,
    "CAMARA": 8,
    "MAQUINARIA": 1,
    "MAQUINA": 1,
    "DATA": 0,
}

# Fragmento de nombre de hoja -> nombre de sede en BD
MAPEO_SEDES = {
    "OFICINA": "Oficina Principal",
    "CHINCH": "Chincha",
    "PISCO": "Pisco",
    "ICA": "Ica",
    "SCP ICA": "San Cristobal del Peru Ica",
    "SCP AND": "San Cristobal del Peru Andahuaylas",
    "SCP AQP": "Arequipa",
    "SCP CUS": "Cusco",
    "SCP TRU": "Trujillo",
    "SCP CHIC": "Chiclayo",
    "SCP PIU": "Piura",
    "SCP HYO": "Huancayo",
}

# --- CONDICIÓN -> ESTADO ---
VOCABULARIO_MANTENIMIENTO = ["MALO", "AVERIADO", "DAÑADO", "DANADO", "INOPERATIVO", "MAL ESTADO"]
VOCABULARIO_BAJA = ["BAJA", "EXTRAIDO", "DESECHO", "DESCARTADO"]

# --- COLUMNAS DEL EXCEL ---
COLUMNAS_TIPO = ["TIPO DE ACTIVO", "TIPO ACTIVO", "TIPO"]
COLUMNAS_CONDICION = ["CONDICIÓN", "ESTADO USO", "ESTADO"]
COLUMNAS_MARCA = ["MARCA"]
COLUMNAS_MODELO = ["MODELO"]
COLUMNAS_SERIE = ["SERIE", "N° DE SERIE", "NRO DE SERIE", "NUMERO DE SERIE"]
COLUMNAS_NOTAS = [
    ("Desc", ["DESCRIPCIÓN"]),
    ("Color", ["COLOR"]),
    ("Gama", ["GAMA"]),
    ("Adquirido", ["FECHA ADQUISICION", "FECHA DE ADQUISICIÓN"]),
]
VALOR_GENERICO = "Genérico"

COLUMNAS_PLANTILLA = [
    "TIPO DE ACTIVO", "MARCA", "MODELO", "SERIE", "CONDICIÓN", "DESCRIPCIÓN",
    "COLOR", "GAMA", "FECHA ADQUISICION", "PROCESADOR", "MEMORIA RAM",
    "SISTEMA OPERATIVO", "ÁREA", "IP", "IMEI", "OPERADOR", "TAMAÑO PANTALLA",
]

LISTAS_OPCIONES = {
    "TIPO DE ACTIVO": ["PC", "LAPTOP", "MONITOR", "IMPRESORA", "ESCANER", "PROYECTOR", "CELULAR", "CAMARA", "DVR", "SWITCH", "MAQUINARIA"],
    "CONDICIÓN": ["BUENO", "REGULAR", "MALO", "INOPERATIVO", "BAJA"],
}
