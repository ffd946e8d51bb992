"""Lectura y escritura de archivos Excel en memoria"""
import io
import re
from decimal import Decimal, InvalidOperation
from zipfile import BadZipFile

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils.exceptions import InvalidFileException

XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'

ENVIO_HEADERS = ['ID', 'Marca', 'Amperaje', 'Cantidad', 'Precio Cliente Final']


def sanitize_sheet_name(name):
    """Quita caracteres no válidos en nombres de pestaña de Excel"""
    limpio = re.sub(r'[\[\]:*?/\\]', '', name or '')
    return limpio[:31] or 'Hoja 1'


def crear_excel(headers, rows, sheet_name='Hoja 1', widths=None, hidden=()):
    """Genera un archivo Excel en memoria a partir de cabeceras y filas"""
    workbook = Workbook()
    worksheet = workbook.active
    worksheet.title = sanitize_sheet_name(sheet_name)

    worksheet.append(headers)
    for cell in worksheet[1]:
        cell.font = Font(bold=True, color='FFFFFF')
        cell.fill = PatternFill('solid', fgColor='1A5F7A')
    for fila in rows:
        worksheet.append(fila)

    for idx, width in enumerate(widths or []):
        letra = worksheet.cell(row=1, column=idx + 1).column_letter
        worksheet.column_dimensions[letra].width = width
    for letra in hidden:
        worksheet.column_dimensions[letra].hidden = True

    output = io.BytesIO()
    workbook.save(output)
    output.seek(0)
    return output


def leer_excel(archivo):
    """
    Leer la primera hoja como lista de diccionarios.

    La primera fila son las cabeceras. Las filas vacías se descartan y las
    celdas vacías quedan como ''.
    """
    try:
        workbook = load_workbook(archivo, data_only=True, read_only=True)
    except (InvalidFileException, BadZipFile, KeyError, OSError) as exc:
        raise ValueError('No se pudo leer el Excel. Verifica el formato.') from exc

    sheet = workbook.worksheets[0]
    rows = list(sheet.iter_rows(values_only=True))
    workbook.close()
    if not rows:
        raise ValueError('El archivo está vacío')

    headers = [str(cell).strip() if cell is not None else '' for cell in rows[0]]
    registros = []
    for row in rows[1:]:
        if all(cell is None or str(cell).strip() == '' for cell in row):
            continue
        registro = {}
        for idx, header in enumerate(headers):
            if not header:
                continue
            valor = row[idx] if idx < len(row) else None
            registro[header] = '' if valor is None else valor
        registros.append(registro)

    if not registros:
        raise ValueError('El archivo está vacío')
    return registros


def precio_positivo(valor):
    """Decimal > 0 o None si la celda no trae un precio válido"""
    if valor is None or isinstance(valor, bool):
        return None
    try:
        precio = Decimal(str(valor).strip().replace(',', '.'))
    except InvalidOperation:
        return None
    if not precio.is_finite() or precio <= 0:
        return None
    return precio


def excel_envio(envio):
    """Planilla para que la tienda llene el precio al cliente final"""
    rows = [
        [
            item.id,
            item.marca,
            item.amperaje,
            item.cantidad,
            float(item.precio_tienda) if item.precio_tienda is not None else '',
        ]
        for item in envio.items
    ]
    return crear_excel(
        ENVIO_HEADERS, rows, 'Envio', widths=[40, 25, 15, 12, 20], hidden=('A',)
    )


def precios_desde_excel(registros, items):
    """
    Cruzar las filas importadas con los items de un envío.

    Cada fila se ubica por ID y, si no lo trae o no pertenece al envío, por
    Marca + Amperaje. Devuelve (precios, no_encontradas) donde precios es un
    mapa item_id -> Decimal.
    """
    por_id = {item.id: item for item in items}
    por_producto = {
        (item.marca.strip().lower(), item.amperaje.strip().lower()): item for item in items
    }

    precios = {}
    no_encontradas = 0
    for row in registros:
        item = por_id.get(str(row.get('ID') or '').strip())
        if item is None:
            marca = str(row.get('Marca') or '').strip().lower()
            amperaje = str(row.get('Amperaje') or '').strip().lower()
            item = por_producto.get((marca, amperaje))
        if item is None:
            no_encontradas += 1
            continue

        precio = precio_positivo(row.get('Precio Cliente Final'))
        if precio is not None:
            precios[item.id] = precio
    return precios, no_encontradas
