from decimal import Decimal

from flask import Blueprint, jsonify, request
from flask_login import login_required
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.database import DeudaConfig, DeudaOperacion
from routes.utils import db_error, error, json_body, pagina_y_limite, paginar, parse_decimal, texto

deuda_bp = Blueprint('deuda', __name__, url_prefix='/api/deuda')

CAMPOS_TEXTO = ('detalle', 'entidad_financiera', 'metodo_pago')


def saldo_inicial():
    config = DeudaConfig.query.order_by(DeudaConfig.id).first()
    return Decimal(str(config.saldo_inicial or 0)) if config else Decimal('0')


@deuda_bp.get('')
@login_required
def listar():
    """Saldo de la deuda con el proveedor y operaciones paginadas"""
    totales = {tipo: (Decimal('0'), 0) for tipo in DeudaOperacion.TIPOS}
    for tipo, importe, cantidad in db.session.query(
        DeudaOperacion.tipo,
        func.coalesce(func.sum(DeudaOperacion.importe), 0),
        func.count(DeudaOperacion.id),
    ).group_by(DeudaOperacion.tipo):
        totales[tipo] = (Decimal(str(importe)), cantidad)

    inicial = saldo_inicial()
    actual = inicial + totales['compra'][0] - totales['deposito'][0] - totales['camion'][0]

    query = DeudaOperacion.query
    tipo = request.args.get('tipo')
    if tipo and tipo not in ('todos', '_all'):
        query = query.filter(DeudaOperacion.tipo == tipo)
    search = (request.args.get('search') or '').strip()
    if search:
        query = query.filter(DeudaOperacion.detalle.ilike(f'%{search}%'))

    _, limit = pagina_y_limite(5)
    operaciones, total, page, total_pages = paginar(query.order_by(DeudaOperacion.created_at.desc()), 5)

    return jsonify({
        'saldo_inicial': float(inicial),
        'saldo_actual': float(actual),
        'stats': {
            'total_depositos': float(totales['deposito'][0]),
            'total_camiones': float(totales['camion'][0]),
            'total_compras': float(totales['compra'][0]),
            'count_depositos': totales['deposito'][1],
            'count_camiones': totales['camion'][1],
            'count_compras': totales['compra'][1],
        },
        'operaciones': [o.to_dict() for o in operaciones],
        'total': total,
        'page': page,
        'limit': limit,
        'totalPages': total_pages,
    })


@deuda_bp.post('')
@login_required
def crear():
    data = json_body()

    if data.get('action') == 'setSaldo':
        try:
            saldo = parse_decimal(data.get('saldo'))
        except ValueError as exc:
            return error(str(exc))
        config = DeudaConfig.query.order_by(DeudaConfig.id).first()
        if config is None:
            config = DeudaConfig()
            db.session.add(config)
        config.saldo_inicial = saldo
        try:
            db.session.commit()
        except SQLAlchemyError:
            return db_error('Error al actualizar saldo')
        return jsonify({'success': True, 'message': 'Saldo actualizado'})

    tipo = data.get('tipo')
    if tipo not in DeudaOperacion.TIPOS:
        return error('Tipo de operación no válido')
    try:
        kilos = parse_decimal(data.get('kilos'))
        precio_unitario = parse_decimal(data.get('precio_unitario'))
        importe = kilos * precio_unitario if tipo == 'camion' else parse_decimal(data.get('importe'))
    except ValueError as exc:
        return error(str(exc))

    operacion = DeudaOperacion(
        tipo=tipo,
        kilos=kilos,
        precio_unitario=precio_unitario,
        importe=importe,
    )
    for campo in CAMPOS_TEXTO:
        setattr(operacion, campo, texto(data.get(campo)))

    try:
        db.session.add(operacion)
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al crear operación')

    return jsonify(operacion.to_dict()), 201


@deuda_bp.patch('')
@login_required
def actualizar():
    data = json_body()
    if not data.get('id'):
        return error('ID requerido')

    operacion = db.session.get(DeudaOperacion, data['id'])
    if not operacion:
        return error('Operación no encontrada', 404)

    for campo in CAMPOS_TEXTO:
        if campo in data:
            setattr(operacion, campo, texto(data[campo]))
    try:
        if 'kilos' in data:
            operacion.kilos = parse_decimal(data['kilos'])
        if 'precio_unitario' in data:
            operacion.precio_unitario = parse_decimal(data['precio_unitario'])
        if operacion.tipo == 'camion' and ('kilos' in data or 'precio_unitario' in data):
            operacion.importe = Decimal(str(operacion.kilos or 0)) * Decimal(str(operacion.precio_unitario or 0))
        elif 'importe' in data:
            operacion.importe = parse_decimal(data['importe'])
    except ValueError as exc:
        return error(str(exc))

    try:
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al actualizar operación')

    return jsonify(operacion.to_dict())


@deuda_bp.delete('')
@login_required
def eliminar():
    operacion_id = request.args.get('id')
    if not operacion_id:
        return error('ID requerido')

    operacion = db.session.get(DeudaOperacion, operacion_id)
    if not operacion:
        return error('Operación no encontrada', 404)

    try:
        db.session.delete(operacion)
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al eliminar operación')

    return jsonify({'success': True})
