import io
from datetime import date

from flask import Blueprint, current_app, jsonify, request, send_file
from flask_login import login_required
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.database import Inventario
from routes.utils import (
    arg_true,
    db_error,
    error,
    json_body,
    pagina_y_limite,
    paginar,
    parse_decimal,
    parse_int,
    texto,
    unicos,
)
from services.excel import XLSX_MIMETYPE, crear_excel, leer_excel
from services.stock import buscar_central, mismo_producto

inventory_bp = Blueprint('inventory', __name__, url_prefix='/api/inventory')

EXCEL_HEADERS = ['Marca', 'Amperaje', 'Cantidad', 'Costo', 'Precio de Venta']
OPERADORES = {
    'eq': lambda col, val: col == val,
    'gt': lambda col, val: col > val,
    'lt': lambda col, val: col < val,
    'gte': lambda col, val: col >= val,
    'lte': lambda col, val: col <= val,
}


def entero_o_cero(valor):
    try:
        return parse_int(valor)
    except ValueError:
        return 0


def decimal_o_cero(valor):
    try:
        return parse_decimal(valor)
    except ValueError:
        return parse_decimal(0)


def primer_valor(row, *claves):
    for clave in claves:
        valor = row.get(clave)
        if valor not in (None, ''):
            return valor
    return None


def normalizar_fila(row):
    """Fila de Excel o JSON con los nombres de columna habituales"""
    return {
        'marca': texto(primer_valor(row, 'marca', 'Marca')),
        'amperaje': texto(primer_valor(row, 'amperaje', 'Amperaje')),
        'cantidad': entero_o_cero(primer_valor(row, 'cantidad', 'Cantidad')),
        'costo': decimal_o_cero(primer_valor(row, 'costo', 'Costo')),
        'precio_venta': decimal_o_cero(
            primer_valor(row, 'precio_venta', 'Precio de Venta', 'PrecioVenta', 'precioVenta')
        ),
    }


def fila_json(fila, existente=None):
    data = {
        'marca': fila['marca'],
        'amperaje': fila['amperaje'],
        'cantidad': fila['cantidad'],
        'costo': float(fila['costo']),
        'precio_venta': float(fila['precio_venta']),
    }
    if existente is not None:
        data.update({
            'existingId': existente.id,
            'existingCantidad': existente.cantidad,
            'existingCosto': float(existente.costo or 0),
            'existingPrecioVenta': float(existente.precio_venta or 0),
        })
    return data


def importar_inventario(registros, mode, update_mode, update_prices):
    """
    Importación masiva: analiza o aplica las filas contra el inventario.

    Devuelve (payload, status).
    """
    filas = [normalizar_fila(row) for row in registros if isinstance(row, dict)]
    filas = [f for f in filas if f['marca'] and f['amperaje']]
    # Cantidades y precios negativos no se importan
    validas = [
        f for f in filas if f['cantidad'] >= 0 and f['costo'] >= 0 and f['precio_venta'] >= 0
    ]
    invalidas = len(filas) - len(validas)
    filas = validas
    if not filas:
        return {'error': 'No se encontraron productos válidos en el archivo'}, 400

    existentes = {
        (i.marca.lower(), i.amperaje.lower()): i for i in Inventario.query.all()
    }
    nuevos = {}
    actualizar = []
    for fila in filas:
        clave = (fila['marca'].lower(), fila['amperaje'].lower())
        if clave in existentes:
            actualizar.append((fila, existentes[clave]))
        elif clave in nuevos:
            # Filas repetidas de un producto nuevo se suman
            nuevos[clave]['cantidad'] += fila['cantidad']
        else:
            nuevos[clave] = fila

    if mode == 'analyze':
        return {
            'success': True,
            'analysis': {
                'total': len(filas),
                'invalid': invalidas,
                'new': len(nuevos),
                'existing': len(actualizar),
                'newItems': [fila_json(f) for f in list(nuevos.values())[:10]],
                'updateItems': [fila_json(f, e) for f, e in actualizar[:10]],
            },
        }, 200

    try:
        for fila in nuevos.values():
            db.session.add(Inventario(**fila))
        for fila, producto in actualizar:
            if update_mode == 'replace':
                producto.cantidad = fila['cantidad']
            else:
                producto.cantidad += fila['cantidad']
            if update_prices:
                producto.costo = fila['costo']
                producto.precio_venta = fila['precio_venta']
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception('Error en importación de inventario')
        return {'error': 'Error al importar productos'}, 500

    if invalidas:
        current_app.logger.warning('Importación de inventario: %s filas negativas omitidas', invalidas)
    current_app.logger.info(
        'Importación de inventario: %s nuevos, %s actualizados', len(nuevos), len(actualizar)
    )
    return {
        'success': True,
        'inserted': len(nuevos),
        'updated': len(actualizar),
        'total': len(nuevos) + len(actualizar),
        'invalid': invalidas,
    }, 200


def filtros_inventario(query, incluir_min_stock=True):
    search = (request.args.get('search') or '').strip()
    marca = (request.args.get('marca') or '').strip()
    amperaje = (request.args.get('amperaje') or '').strip()
    cantidad_op = request.args.get('cantidadOp') or ''
    cantidad_val = request.args.get('cantidadVal') or ''
    min_stock = request.args.get('minStock')

    if search:
        patron = f'%{search}%'
        query = query.filter(or_(Inventario.marca.ilike(patron), Inventario.amperaje.ilike(patron)))
    if marca:
        query = query.filter(Inventario.marca == marca)
    if amperaje:
        query = query.filter(Inventario.amperaje == amperaje)
    if cantidad_op in OPERADORES and cantidad_val:
        query = query.filter(OPERADORES[cantidad_op](Inventario.cantidad, entero_o_cero(cantidad_val)))
    if incluir_min_stock and min_stock:
        query = query.filter(Inventario.cantidad >= entero_o_cero(min_stock))
    return query


def totales(query):
    """Productos, unidades, costo y valor de venta de una consulta"""
    fila = query.with_entities(
        func.count(Inventario.id),
        func.coalesce(func.sum(Inventario.cantidad), 0),
        func.coalesce(func.sum(Inventario.cantidad * Inventario.costo), 0),
        func.coalesce(func.sum(Inventario.cantidad * Inventario.precio_venta), 0),
    ).order_by(None).one()
    return int(fila[0]), int(fila[1]), float(fila[2]), float(fila[3])


@inventory_bp.get('')
@login_required
def listar():
    marca = (request.args.get('marca') or '').strip()
    amperaje = (request.args.get('amperaje') or '').strip()

    # Producto exacto, para detectar existentes antes de crear
    if arg_true('searchExact') and marca and amperaje:
        producto = buscar_central(marca, amperaje)
        return jsonify({'product': producto.to_dict() if producto else None})

    if arg_true('getMarcas'):
        marcas = [fila[0] for fila in db.session.query(Inventario.marca).distinct()]
        return jsonify({'marcas': unicos(marcas)})

    if arg_true('getAmperajes') and marca:
        amperajes = [
            fila[0]
            for fila in db.session.query(Inventario.amperaje).filter(Inventario.marca == marca).distinct()
        ]
        return jsonify({'amperajes': unicos(amperajes)})

    query = filtros_inventario(Inventario.query).order_by(Inventario.marca, Inventario.amperaje)

    if arg_true('noPagination'):
        items = query.all()
        return jsonify({
            'items': [i.to_dict() for i in items],
            'total': len(items),
            'marcas': unicos(i.marca for i in items),
        })

    items, total, page, total_pages = paginar(query, 5)
    productos, unidades, costo, venta = totales(filtros_inventario(Inventario.query, False))
    g_productos, g_unidades, g_costo, g_venta = totales(Inventario.query)

    return jsonify({
        'items': [i.to_dict() for i in items],
        'total': total,
        'page': page,
        'limit': pagina_y_limite(5)[1],
        'totalPages': total_pages,
        'stats': {
            'productos': productos,
            'unidadesTotales': unidades,
            'costoTotal': costo,
            'valorVenta': venta,
        },
        'totalProducts': g_productos,
        'totalUnits': g_unidades,
        'totalCost': g_costo,
        'totalSaleValue': g_venta,
    })


@inventory_bp.post('')
@login_required
def crear():
    data = request.get_json(silent=True)

    # Importación masiva
    if isinstance(data, list):
        payload, status = importar_inventario(
            data,
            request.args.get('mode'),
            request.args.get('updateMode') or 'sum',
            arg_true('updatePrices'),
        )
        return jsonify(payload), status

    data = data or {}
    marca = texto(data.get('marca'))
    amperaje = texto(data.get('amperaje'))
    if not marca or not amperaje:
        return error('Marca y amperaje son requeridos')

    try:
        cantidad = parse_int(data.get('cantidad'))
        costo = parse_decimal(data.get('costo'))
        precio_venta = parse_decimal(data.get('precioVenta'))
    except ValueError as exc:
        return error(str(exc))
    if cantidad < 0 or costo < 0 or precio_venta < 0:
        return error('Cantidad y precios no pueden ser negativos')

    if Inventario.query.filter(*mismo_producto(Inventario, marca, amperaje)).first():
        return error(f'El producto {marca} {amperaje} ya existe')

    producto = Inventario(
        marca=marca, amperaje=amperaje, cantidad=cantidad, costo=costo, precio_venta=precio_venta
    )
    try:
        db.session.add(producto)
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al crear producto')

    return jsonify({'success': True, 'item': producto.to_dict()})


@inventory_bp.patch('')
@login_required
def actualizar():
    data = json_body()
    if not data.get('id'):
        return error('ID requerido')

    producto = db.session.get(Inventario, data['id'])
    if not producto:
        return error('Producto no encontrado', 404)

    if data.get('cantidad') in (None, ''):
        return error('Cantidad requerida')
    try:
        cantidad = parse_int(data['cantidad'])
        costo = parse_decimal(data.get('costo'), producto.costo or 0)
        precio_venta = parse_decimal(data.get('precioVenta'), producto.precio_venta or 0)
    except ValueError as exc:
        return error(str(exc))
    if cantidad < 0 or costo < 0 or precio_venta < 0:
        return error('Cantidad y precios no pueden ser negativos')

    # Solo cantidad, usado al ajustar stock
    if data.get('onlyQuantity'):
        producto.cantidad = cantidad
    else:
        marca = texto(data.get('marca')) or producto.marca
        amperaje = texto(data.get('amperaje')) or producto.amperaje
        duplicado = Inventario.query.filter(
            Inventario.id != producto.id, *mismo_producto(Inventario, marca, amperaje)
        ).first()
        if duplicado:
            return error(f'El producto {marca} {amperaje} ya existe')
        producto.marca = marca
        producto.amperaje = amperaje
        producto.cantidad = cantidad
        producto.costo = costo
        producto.precio_venta = precio_venta

    try:
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al actualizar')

    return jsonify({'success': True, 'item': producto.to_dict()})


@inventory_bp.delete('')
@login_required
def eliminar():
    try:
        if arg_true('all'):
            Inventario.query.delete()
            db.session.commit()
            current_app.logger.warning('Inventario central vaciado')
            return jsonify({'success': True, 'message': 'Inventario vaciado'})

        producto_id = request.args.get('id')
        if not producto_id:
            return error('ID requerido')
        producto = db.session.get(Inventario, producto_id)
        if not producto:
            return error('Producto no encontrado', 404)
        db.session.delete(producto)
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al eliminar')

    return jsonify({'success': True})


@inventory_bp.get('/excel')
@login_required
def exportar_excel():
    items = filtros_inventario(Inventario.query).order_by(Inventario.marca, Inventario.amperaje).all()
    rows = [
        [i.marca, i.amperaje, i.cantidad, float(i.costo or 0), float(i.precio_venta or 0)]
        for i in items
    ]
    output = crear_excel(EXCEL_HEADERS, rows, 'Inventario', widths=[25, 15, 12, 14, 16])
    return send_file(
        output,
        as_attachment=True,
        download_name=f'Inventario_{date.today().isoformat()}.xlsx',
        mimetype=XLSX_MIMETYPE,
    )


@inventory_bp.get('/excel/plantilla')
@login_required
def plantilla_excel():
    output = crear_excel(EXCEL_HEADERS, [], 'Plantilla', widths=[25, 15, 12, 14, 16])
    return send_file(
        output,
        as_attachment=True,
        download_name='plantilla_inventario.xlsx',
        mimetype=XLSX_MIMETYPE,
    )


@inventory_bp.post('/excel')
@login_required
def importar_excel():
    archivo = request.files.get('file')
    if not archivo or not archivo.filename:
        return error('Archivo requerido')

    try:
        registros = leer_excel(io.BytesIO(archivo.read()))
    except ValueError as exc:
        return error(str(exc))

    payload, status = importar_inventario(
        registros,
        request.args.get('mode') or request.form.get('mode'),
        request.args.get('updateMode') or request.form.get('updateMode') or 'sum',
        arg_true('updatePrices') or (request.form.get('updatePrices') or '').lower() == 'true',
    )
    return jsonify(payload), status
