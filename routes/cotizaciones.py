from flask import Blueprint, current_app, jsonify, request, send_file
from flask_login import login_required
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.database import ESTADOS_COTIZACION, Cotizacion
from routes.utils import (
    arg_filtro,
    arg_true,
    db_error,
    error,
    json_body,
    paginar,
    parse_decimal,
    parse_int,
    texto,
)
from services.empresa import get_empresa_config, reservar_numero_cotizacion
from services.pdf import create_cotizacion_pdf
from services.stock import StockError, descontar_cotizacion

cotizaciones_bp = Blueprint('cotizaciones', __name__, url_prefix='/api/cotizaciones')

CAMPOS_CLIENTE = ('cliente_nombre', 'cliente_telefono', 'cliente_email', 'cliente_direccion')
# Ya descontados del stock al convertir
CAMPOS_VENTA = ('productos', 'descuento', 'vigencia_dias')


def normalizar_productos(productos):
    """
    Validar las líneas de una cotización.

    Cada línea guarda marca, amperaje, cantidad, precio y total; costo y
    precio_venta se conservan si vienen para calcular ganancias después.
    """
    if not isinstance(productos, list) or not productos:
        raise ValueError('Debe incluir al menos un producto')

    lineas = []
    for producto in productos:
        if not isinstance(producto, dict):
            raise ValueError('Producto inválido')
        marca = texto(producto.get('marca'))
        amperaje = texto(producto.get('amperaje'))
        if not marca or not amperaje:
            raise ValueError('Cada producto requiere marca y amperaje')
        cantidad = parse_int(producto.get('cantidad'))
        if cantidad <= 0:
            raise ValueError(f'Cantidad inválida para {marca} {amperaje}')
        precio = parse_decimal(producto.get('precio'))
        total = parse_decimal(producto.get('total'), precio * cantidad)

        linea = {
            'marca': marca,
            'amperaje': amperaje,
            'cantidad': cantidad,
            'precio': float(precio),
            'total': float(total),
        }
        for opcional in ('costo', 'precio_venta'):
            if producto.get(opcional) not in (None, ''):
                linea[opcional] = float(parse_decimal(producto[opcional]))
        lineas.append(linea)
    return lineas


@cotizaciones_bp.get('')
@login_required
def listar():
    cotizacion_id = request.args.get('id')
    if cotizacion_id:
        cotizacion = db.session.get(Cotizacion, cotizacion_id)
        if not cotizacion:
            return error('Cotización no encontrada', 404)
        return jsonify({'cotizacion': cotizacion.to_dict()})

    if arg_true('getStats'):
        conteos = dict(
            db.session.query(Cotizacion.estado, func.count(Cotizacion.id)).group_by(Cotizacion.estado).all()
        )
        valor_total = db.session.query(func.coalesce(func.sum(Cotizacion.total), 0)).scalar()
        return jsonify({
            'stats': {
                'pendientes': conteos.get('pendiente', 0),
                'aceptadas': conteos.get('aceptada', 0),
                'convertidas': conteos.get('convertida', 0),
                'rechazadas': conteos.get('rechazada', 0),
                'total': sum(conteos.values()),
                'valorTotal': float(valor_total or 0),
            }
        })

    query = Cotizacion.query
    search = (request.args.get('search') or '').strip()
    if search:
        patron = f'%{search}%'
        query = query.filter(or_(Cotizacion.numero.ilike(patron), Cotizacion.cliente_nombre.ilike(patron)))
    estado = arg_filtro('estado')
    if estado:
        query = query.filter(Cotizacion.estado == estado)

    items, total, page, total_pages = paginar(query.order_by(Cotizacion.created_at.desc()), 5)
    return jsonify({
        'cotizaciones': [c.to_dict() for c in items],
        'total': total,
        'page': page,
        'totalPages': total_pages,
    })


@cotizaciones_bp.post('')
@login_required
def crear():
    data = json_body()
    try:
        productos = normalizar_productos(data.get('productos'))
        descuento = parse_decimal(data.get('descuento'))
        vigencia = parse_int(data.get('vigencia_dias'), 7)
    except ValueError as exc:
        return error(str(exc))
    if descuento < 0 or vigencia < 0:
        return error('Descuento y vigencia no pueden ser negativos')

    cotizacion = Cotizacion(
        productos=productos,
        descuento=descuento,
        vigencia_dias=vigencia,
        terminos=data.get('terminos'),
        estado='pendiente',
    )
    for campo in CAMPOS_CLIENTE:
        setattr(cotizacion, campo, texto(data.get(campo)))
    cotizacion.calcular_totales()
    cotizacion.calcular_vencimiento()

    try:
        cotizacion.numero = reservar_numero_cotizacion()
        db.session.add(cotizacion)
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al crear cotización')

    current_app.logger.info('Cotización %s creada por Bs. %s', cotizacion.numero, cotizacion.total)
    return jsonify({'cotizacion': cotizacion.to_dict(), 'message': 'Cotización creada exitosamente'})


@cotizaciones_bp.patch('')
@login_required
def actualizar():
    data = json_body()
    if not data.get('id'):
        return error('ID requerido')

    cotizacion = db.session.get(Cotizacion, data['id'])
    if not cotizacion:
        return error('Cotización no encontrada', 404)

    estado = data.get('estado')
    if estado and estado not in ESTADOS_COTIZACION:
        return error('Estado no válido')
    if cotizacion.estado == 'convertida' and estado and estado != 'convertida':
        return error('Una cotización convertida no puede cambiar de estado')
    if cotizacion.estado == 'convertida' and any(campo in data for campo in CAMPOS_VENTA):
        return error('Una cotización convertida no puede modificarse')

    try:
        if 'productos' in data:
            cotizacion.productos = normalizar_productos(data['productos'])
        if 'descuento' in data:
            cotizacion.descuento = parse_decimal(data['descuento'])
        if 'vigencia_dias' in data:
            cotizacion.vigencia_dias = parse_int(data['vigencia_dias'], 7)
            cotizacion.calcular_vencimiento()
    except ValueError as exc:
        return error(str(exc))
    for campo in CAMPOS_CLIENTE + ('terminos',):
        if campo in data:
            setattr(cotizacion, campo, texto(data[campo]))
    if 'productos' in data or 'descuento' in data:
        cotizacion.calcular_totales()

    try:
        if estado == 'convertida' and cotizacion.estado != 'convertida':
            descontar_cotizacion(cotizacion)
            current_app.logger.info('Cotización %s convertida en venta', cotizacion.numero)
        if estado:
            cotizacion.estado = estado
        db.session.commit()
    except StockError as exc:
        db.session.rollback()
        return error(str(exc))
    except SQLAlchemyError:
        return db_error('Error al actualizar cotización')

    return jsonify({'cotizacion': cotizacion.to_dict(), 'message': 'Cotización actualizada'})


@cotizaciones_bp.delete('')
@login_required
def eliminar():
    cotizacion_id = request.args.get('id')
    if not cotizacion_id:
        return error('ID requerido')

    cotizacion = db.session.get(Cotizacion, cotizacion_id)
    if not cotizacion:
        return error('Cotización no encontrada', 404)

    try:
        db.session.delete(cotizacion)
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al eliminar cotización')

    return jsonify({'message': 'Cotización eliminada'})


@cotizaciones_bp.get('/<cotizacion_id>/pdf')
@login_required
def descargar_pdf(cotizacion_id):
    cotizacion = db.session.get(Cotizacion, cotizacion_id)
    if not cotizacion:
        return error('Cotización no encontrada', 404)

    output = create_cotizacion_pdf(get_empresa_config(), cotizacion)
    return send_file(
        output,
        as_attachment=True,
        download_name=f'Cotizacion_{cotizacion.numero}.pdf',
        mimetype='application/pdf',
    )
