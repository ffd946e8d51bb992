from decimal import Decimal

from flask import Blueprint, jsonify, request
from flask_login import login_required
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.database import DineroOperacion, Tienda
from routes.utils import db_error, error, json_body, pagina_y_limite, paginar, parse_decimal, texto
from services.reportes import total_ventas_directas

dinero_bp = Blueprint('dinero', __name__, url_prefix='/api/dinero')


def asignar_tienda(operacion, tienda_id, tienda_nombre=None):
    """Vincular la operación a una tienda; el nombre queda guardado aparte"""
    if not tienda_id:
        operacion.tienda_id = None
        operacion.tienda_nombre = texto(tienda_nombre)
        return True
    tienda = db.session.get(Tienda, tienda_id)
    if not tienda:
        return False
    operacion.tienda_id = tienda.id
    operacion.tienda_nombre = texto(tienda_nombre) or tienda.nombre
    return True


@dinero_bp.get('')
@login_required
def listar():
    ventas_directas, count_ventas = total_ventas_directas()

    totales = {tipo: (Decimal('0'), 0) for tipo in DineroOperacion.TIPOS}
    for tipo, importe, cantidad in db.session.query(
        DineroOperacion.tipo,
        func.coalesce(func.sum(DineroOperacion.importe), 0),
        func.count(DineroOperacion.id),
    ).group_by(DineroOperacion.tipo):
        totales[tipo] = (Decimal(str(importe)), cantidad)
    ingresos, count_ingresos = totales['ingreso_tienda']
    salidas, count_salidas = totales['salida_efectivo']

    query = DineroOperacion.query
    tipo = request.args.get('tipo')
    if tipo and tipo not in ('todos', '_all'):
        query = query.filter(DineroOperacion.tipo == tipo)
    search = (request.args.get('search') or '').strip()
    if search:
        query = query.filter(DineroOperacion.detalle.ilike(f'%{search}%'))

    _, limit = pagina_y_limite(5)
    operaciones, total, page, total_pages = paginar(query.order_by(DineroOperacion.created_at.desc()), 5)

    return jsonify({
        'ventas_directas': float(ventas_directas),
        'count_ventas': count_ventas,
        'balance': float(ventas_directas + ingresos - salidas),
        'stats': {
            'total_ingresos_tiendas': float(ingresos),
            'total_salidas': float(salidas),
            'count_ingresos': count_ingresos,
            'count_salidas': count_salidas,
        },
        'operaciones': [o.to_dict() for o in operaciones],
        'total': total,
        'page': page,
        'limit': limit,
        'totalPages': total_pages,
    })


@dinero_bp.post('')
@login_required
def crear():
    data = json_body()
    tipo = data.get('tipo')
    if tipo not in DineroOperacion.TIPOS:
        return error('Tipo de operación no válido')
    try:
        importe = parse_decimal(data.get('importe'))
    except ValueError as exc:
        return error(str(exc))
    if importe < 0:
        return error('El importe no puede ser negativo')

    operacion = DineroOperacion(tipo=tipo, detalle=texto(data.get('detalle')), importe=importe)
    if not asignar_tienda(operacion, data.get('tienda_id'), data.get('tienda_nombre')):
        return error('Tienda no encontrada', 404)

    try:
        db.session.add(operacion)
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al crear operación')

    return jsonify(operacion.to_dict()), 201


@dinero_bp.patch('')
@login_required
def actualizar():
    data = json_body()
    if not data.get('id'):
        return error('ID requerido')

    operacion = db.session.get(DineroOperacion, data['id'])
    if not operacion:
        return error('Operación no encontrada', 404)

    if 'detalle' in data:
        operacion.detalle = texto(data['detalle'])
    if 'importe' in data:
        try:
            importe = parse_decimal(data['importe'])
        except ValueError as exc:
            return error(str(exc))
        if importe < 0:
            return error('El importe no puede ser negativo')
        operacion.importe = importe
    if 'tienda_id' in data:
        if not asignar_tienda(operacion, data['tienda_id'], data.get('tienda_nombre')):
            return error('Tienda no encontrada', 404)
    elif 'tienda_nombre' in data:
        operacion.tienda_nombre = texto(data['tienda_nombre'])

    try:
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al actualizar operación')

    return jsonify(operacion.to_dict())


@dinero_bp.delete('')
@login_required
def eliminar():
    operacion_id = request.args.get('id')
    if not operacion_id:
        return error('ID requerido')

    operacion = db.session.get(DineroOperacion, operacion_id)
    if not operacion:
        return error('Operación no encontrada', 404)

    try:
        db.session.delete(operacion)
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al eliminar operación')

    return jsonify({'success': True})
