from decimal import Decimal

from flask import Blueprint, current_app, jsonify, request
from flask_login import login_required
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.database import Tienda, TiendaInventario
from routes.utils import (
    arg_filtro,
    arg_true,
    db_error,
    error,
    json_body,
    lineas_de_stock,
    paginar,
    parse_decimal,
    parse_int,
    texto,
    unicos,
)
from services.stock import StockError, devolver_a_central, devolver_tienda_completa, transferir_a_tienda

tienda_inventario_bp = Blueprint('tienda_inventario', __name__, url_prefix='/api/tienda-inventario')


@tienda_inventario_bp.get('')
@login_required
def listar():
    tienda_id = request.args.get('tiendaId')
    if not tienda_id:
        return error('tiendaId requerido')

    base = TiendaInventario.query.filter_by(tienda_id=tienda_id)

    if arg_true('noPagination'):
        items = base.order_by(TiendaInventario.marca, TiendaInventario.amperaje).all()
        return jsonify({'items': [i.to_dict() for i in items]})

    marca = arg_filtro('marca')
    amperaje = arg_filtro('amperaje')
    query = base
    if marca:
        query = query.filter(TiendaInventario.marca == marca)
    if amperaje:
        query = query.filter(TiendaInventario.amperaje == amperaje)

    items, total, page, total_pages = paginar(
        query.order_by(TiendaInventario.marca, TiendaInventario.amperaje), 10
    )
    fila = query.with_entities(
        func.count(TiendaInventario.id),
        func.coalesce(func.sum(TiendaInventario.cantidad), 0),
        func.coalesce(func.sum(TiendaInventario.cantidad * TiendaInventario.costo), 0),
        func.coalesce(func.sum(TiendaInventario.cantidad * TiendaInventario.precio_venta), 0),
    ).order_by(None).one()

    todos = base.with_entities(TiendaInventario.marca, TiendaInventario.amperaje).all()
    amperajes = [a for m, a in todos if not marca or m == marca]

    return jsonify({
        'items': [i.to_dict() for i in items],
        'total': total,
        'page': page,
        'totalPages': total_pages,
        'stats': {
            'totalProductos': int(fila[0]),
            'totalUnidades': int(fila[1]),
            'valorCosto': float(fila[2]),
            'valorVenta': float(fila[3]),
        },
        'marcas': unicos(m for m, _ in todos),
        'amperajes': unicos(amperajes),
    })


@tienda_inventario_bp.post('')
@login_required
def transferir():
    """Transferencia directa desde el inventario central"""
    data = json_body()
    tienda_id = data.get('tiendaId')
    if not tienda_id:
        return error('tiendaId y productos son requeridos')
    try:
        productos = lineas_de_stock(data.get('productos'), 'inventoryId')
    except ValueError as exc:
        return error(str(exc))
    if not db.session.get(Tienda, tienda_id):
        return error('Tienda no encontrada', 404)

    try:
        exitosos, errores = transferir_a_tienda(tienda_id, productos)
        db.session.commit()
    except StockError as exc:
        db.session.rollback()
        return error(str(exc))
    except SQLAlchemyError:
        return db_error('Error en la transferencia')

    return jsonify({
        'message': f'Transferencia completada: {exitosos} productos enviados',
        'resultados': {'exitosos': exitosos, 'errores': errores},
    })


@tienda_inventario_bp.patch('')
@login_required
def actualizar():
    data = json_body()
    if not data.get('id'):
        return error('ID requerido')

    item = db.session.get(TiendaInventario, data['id'])
    if not item:
        return error('Producto no encontrado', 404)

    if data.get('cantidad') in (None, ''):
        return error('Cantidad requerida')
    try:
        cantidad = parse_int(data['cantidad'])
        costo = parse_decimal(data.get('costo'), item.costo or 0)
        precio_venta = parse_decimal(data.get('precio_venta'), item.precio_venta or 0)
    except ValueError as exc:
        return error(str(exc))
    if cantidad < 0 or costo < 0 or precio_venta < 0:
        return error('Cantidad y precios no pueden ser negativos')

    item.cantidad = cantidad
    if not data.get('onlyQuantity'):
        item.costo = costo
        item.precio_venta = precio_venta

    try:
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al actualizar')

    return jsonify({'success': True, 'item': item.to_dict()})


@tienda_inventario_bp.delete('')
@login_required
def eliminar():
    data = json_body()
    tienda_id = data.get('tiendaId') or request.args.get('tiendaId')
    return_all = data.get('returnAll') or arg_true('returnAll')

    if return_all and tienda_id:
        try:
            devueltos = devolver_tienda_completa(tienda_id)
            db.session.commit()
        except SQLAlchemyError:
            return db_error('Error al devolver inventario')

        if not devueltos:
            return jsonify({'message': 'No hay inventario para devolver', 'devueltos': 0, 'errores': []})
        current_app.logger.info('Tienda %s: %s productos devueltos al central', tienda_id, devueltos)
        return jsonify({
            'message': f'Se devolvieron {devueltos} productos al inventario principal',
            'devueltos': devueltos,
            'errores': [],
        })

    item_id = data.get('id') or request.args.get('id')
    if not item_id:
        return error('ID requerido')
    item = db.session.get(TiendaInventario, item_id)
    if not item:
        return error('Producto no encontrado', 404)

    devolver = bool(data.get('returnToInventory') or arg_true('returnToInventory'))
    try:
        if devolver and item.cantidad > 0:
            devolver_a_central(item.marca, item.amperaje, item.cantidad, item.costo, item.precio_venta)
        db.session.delete(item)
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al eliminar')

    return jsonify({
        'message': 'Producto devuelto al inventario central' if devolver
        else 'Producto eliminado de la tienda'
    })


def fila_saldo(producto):
    """Línea de saldo completa o None si le faltan datos"""
    if not isinstance(producto, dict):
        return None
    marca = texto(producto.get('marca'))
    amperaje = texto(producto.get('amperaje'))
    if not marca or not amperaje:
        return None
    if producto.get('cantidad') in (None, '') or producto.get('precio_venta') in (None, ''):
        return None
    try:
        fila = {
            'marca': marca,
            'amperaje': amperaje,
            'cantidad': parse_int(producto['cantidad']),
            'precio_venta': parse_decimal(producto['precio_venta']),
            'costo': parse_decimal(producto.get('costo'), None),
        }
    except ValueError:
        return None
    if fila['cantidad'] < 0:
        return None
    return fila


def saldo_json(fila, existente=None):
    data = {
        'marca': fila['marca'],
        'amperaje': fila['amperaje'],
        'cantidad': fila['cantidad'],
        'precio_venta': float(fila['precio_venta']),
    }
    if existente is not None:
        data.update({
            'existingId': existente.id,
            'existingCantidad': existente.cantidad,
            'existingPrecio': float(existente.precio_venta or 0),
        })
    return data


@tienda_inventario_bp.post('/saldos')
@login_required
def importar_saldos():
    """Saldos iniciales de una tienda, sin tocar el inventario central"""
    data = json_body()
    tienda_id = data.get('tiendaId')
    productos = data.get('productos')
    if not tienda_id or not isinstance(productos, list) or not productos:
        return error('tiendaId y productos son requeridos')
    if not db.session.get(Tienda, tienda_id):
        return error('Tienda no encontrada', 404)

    existentes = {
        (i.marca.lower(), i.amperaje.lower()): i
        for i in TiendaInventario.query.filter_by(tienda_id=tienda_id).all()
    }
    nuevos = []
    actualizar = []
    for producto in productos:
        fila = fila_saldo(producto)
        if fila is None:
            continue
        existente = existentes.get((fila['marca'].lower(), fila['amperaje'].lower()))
        if existente:
            actualizar.append((fila, existente))
        else:
            nuevos.append(fila)

    if data.get('mode') == 'analyze':
        return jsonify({
            'success': True,
            'analysis': {
                'total': len(productos),
                'new': len(nuevos),
                'existing': len(actualizar),
                'newItems': [saldo_json(f) for f in nuevos[:10]],
                'updateItems': [saldo_json(f, e) for f, e in actualizar[:10]],
            },
        })

    factor = Decimal(str(current_app.config.get('COSTO_ESTIMADO_FACTOR', 0.7)))
    try:
        for fila in nuevos:
            clave = (fila['marca'].lower(), fila['amperaje'].lower())
            if clave in existentes:
                # Repetido dentro del mismo archivo
                existentes[clave].cantidad += fila['cantidad']
                existentes[clave].precio_venta = fila['precio_venta']
                continue
            costo = fila['costo'] if fila['costo'] is not None else fila['precio_venta'] * factor
            item = TiendaInventario(
                tienda_id=tienda_id,
                marca=fila['marca'],
                amperaje=fila['amperaje'],
                cantidad=fila['cantidad'],
                costo=costo.quantize(Decimal('0.01')),
                precio_venta=fila['precio_venta'],
            )
            db.session.add(item)
            existentes[clave] = item
        for fila, existente in actualizar:
            existente.cantidad += fila['cantidad']
            existente.precio_venta = fila['precio_venta']
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al importar saldos')

    insertados = len({(f['marca'].lower(), f['amperaje'].lower()) for f in nuevos})
    return jsonify({
        'success': True,
        'message': f'Saldo importado: {insertados} nuevos, {len(actualizar)} actualizados',
        'inserted': insertados,
        'updated': len(actualizar),
    })
