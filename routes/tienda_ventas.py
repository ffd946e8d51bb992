from flask import Blueprint, current_app, jsonify, request
from flask_login import login_required
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.database import Tienda, TiendaVenta
from routes.utils import db_error, error, json_body, lineas_de_stock, paginar, parse_date, rango_fechas
from services.stock import StockError, registrar_venta, revertir_venta

tienda_ventas_bp = Blueprint('tienda_ventas', __name__, url_prefix='/api/tienda-ventas')


def filtrar_periodo(query, desde, hasta):
    if desde:
        query = query.filter(TiendaVenta.fecha >= desde)
    if hasta:
        query = query.filter(TiendaVenta.fecha <= hasta)
    return query


@tienda_ventas_bp.get('')
@login_required
def listar():
    venta_id = request.args.get('ventaId')
    if venta_id:
        venta = db.session.get(TiendaVenta, venta_id)
        if not venta:
            return error('Venta no encontrada', 404)
        return jsonify({
            'venta': venta.to_dict(),
            'items': [item.to_dict() for item in venta.items],
        })

    tienda_id = request.args.get('tiendaId')
    if not tienda_id:
        return error('tiendaId requerido')
    try:
        desde, hasta = rango_fechas()
    except ValueError as exc:
        return error(str(exc))

    query = filtrar_periodo(TiendaVenta.query.filter_by(tienda_id=tienda_id), desde, hasta)
    ventas, total, page, total_pages = paginar(
        query.order_by(TiendaVenta.fecha.desc(), TiendaVenta.created_at.desc()), 20
    )
    totales = query.with_entities(
        func.coalesce(func.sum(TiendaVenta.total_venta), 0),
        func.coalesce(func.sum(TiendaVenta.total_costo), 0),
        func.coalesce(func.sum(TiendaVenta.ganancia), 0),
    ).order_by(None).one()

    return jsonify({
        'ventas': [v.to_dict(with_items=True) for v in ventas],
        'total': total,
        'page': page,
        'totalPages': total_pages,
        'totales': {
            'totalVentas': float(totales[0]),
            'totalCosto': float(totales[1]),
            'totalGanancia': float(totales[2]),
        },
    })


@tienda_ventas_bp.post('')
@login_required
def crear():
    data = json_body()
    tienda_id = data.get('tiendaId')
    if not tienda_id:
        return error('tiendaId y productos son requeridos')
    try:
        productos = lineas_de_stock(data.get('productos'), 'inventarioId')
    except ValueError as exc:
        return error(str(exc))
    fecha = parse_date(data.get('fecha'))
    if data.get('fecha') and not fecha:
        return error('Fecha inválida')
    if not db.session.get(Tienda, tienda_id):
        return error('Tienda no encontrada', 404)

    try:
        venta = registrar_venta(tienda_id, productos, notas=data.get('notas'), fecha=fecha)
        db.session.commit()
    except StockError as exc:
        db.session.rollback()
        return error(str(exc))
    except SQLAlchemyError:
        return db_error('Error al registrar la venta')

    current_app.logger.info('Venta %s en tienda %s por Bs. %s', venta.id, tienda_id, venta.total_venta)
    return jsonify({
        'success': True,
        'message': f'Venta registrada: {venta.total_unidades} productos, Total: {venta.total_venta:.2f} Bs',
        'venta': venta.to_dict(with_items=True),
    })


@tienda_ventas_bp.delete('')
@login_required
def eliminar():
    venta_id = request.args.get('ventaId')
    if not venta_id:
        return error('ventaId requerido')

    venta = db.session.get(TiendaVenta, venta_id)
    if not venta:
        return error('Venta no encontrada', 404)

    try:
        revertir_venta(venta)
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al eliminar la venta')

    return jsonify({'success': True, 'message': 'Venta eliminada y stock restaurado'})
