from flask import Blueprint, jsonify, request
from flask_login import login_required
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.database import Tienda, TiendaGasto
from routes.utils import (
    arg_filtro,
    arg_true,
    db_error,
    error,
    json_body,
    paginar,
    parse_date,
    parse_decimal,
    rango_fechas,
    texto,
    unicos,
)

tienda_gastos_bp = Blueprint('tienda_gastos', __name__, url_prefix='/api/tienda-gastos')


@tienda_gastos_bp.get('')
@login_required
def listar():
    if arg_true('getCategorias'):
        categorias = [fila[0] for fila in db.session.query(TiendaGasto.categoria).distinct()]
        return jsonify({'categorias': unicos(categorias)})

    tienda_id = request.args.get('tiendaId')
    if not tienda_id:
        return error('tiendaId requerido')
    try:
        desde, hasta = rango_fechas()
    except ValueError as exc:
        return error(str(exc))

    query = TiendaGasto.query.filter_by(tienda_id=tienda_id)
    if desde:
        query = query.filter(TiendaGasto.fecha >= desde)
    if hasta:
        query = query.filter(TiendaGasto.fecha <= hasta)
    categoria = arg_filtro('categoria')
    if categoria:
        query = query.filter(TiendaGasto.categoria == categoria)

    gastos, total, page, total_pages = paginar(
        query.order_by(TiendaGasto.fecha.desc(), TiendaGasto.created_at.desc()), 20
    )
    por_categoria = query.with_entities(
        TiendaGasto.categoria, func.coalesce(func.sum(TiendaGasto.monto), 0)
    ).order_by(None).group_by(TiendaGasto.categoria).all()

    return jsonify({
        'gastos': [g.to_dict() for g in gastos],
        'total': total,
        'page': page,
        'totalPages': total_pages,
        'totalGastos': float(sum(monto for _, monto in por_categoria)),
        'gastosPorCategoria': {cat: float(monto) for cat, monto in por_categoria},
    })


@tienda_gastos_bp.post('')
@login_required
def crear():
    data = json_body()
    tienda_id = data.get('tiendaId')
    categoria = texto(data.get('categoria'))
    if not tienda_id or not categoria or data.get('monto') in (None, ''):
        return error('tiendaId, categoria y monto son requeridos')
    try:
        monto = parse_decimal(data.get('monto'))
    except ValueError as exc:
        return error(str(exc))
    if monto <= 0:
        return error('El monto debe ser mayor a 0')
    fecha = parse_date(data.get('fecha'))
    if data.get('fecha') and not fecha:
        return error('Fecha inválida')
    if not db.session.get(Tienda, tienda_id):
        return error('Tienda no encontrada', 404)

    gasto = TiendaGasto(
        tienda_id=tienda_id,
        categoria=categoria,
        descripcion=texto(data.get('descripcion')) or None,
        monto=monto,
    )
    if fecha:
        gasto.fecha = fecha

    try:
        db.session.add(gasto)
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al registrar el gasto')

    return jsonify({'success': True, 'gasto': gasto.to_dict(), 'message': 'Gasto registrado'})


@tienda_gastos_bp.patch('')
@login_required
def actualizar():
    data = json_body()
    if not data.get('id'):
        return error('ID requerido')

    gasto = db.session.get(TiendaGasto, data['id'])
    if not gasto:
        return error('Gasto no encontrado', 404)

    if 'categoria' in data:
        if not texto(data['categoria']):
            return error('La categoría es requerida')
        gasto.categoria = texto(data['categoria'])
    if 'descripcion' in data:
        gasto.descripcion = texto(data['descripcion']) or None
    if 'monto' in data:
        try:
            monto = parse_decimal(data['monto'])
        except ValueError as exc:
            return error(str(exc))
        if monto <= 0:
            return error('El monto debe ser mayor a 0')
        gasto.monto = monto
    if 'fecha' in data:
        fecha = parse_date(data['fecha'])
        if not fecha:
            return error('Fecha inválida')
        gasto.fecha = fecha

    try:
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al actualizar el gasto')

    return jsonify({'success': True, 'gasto': gasto.to_dict()})


@tienda_gastos_bp.delete('')
@login_required
def eliminar():
    gasto_id = request.args.get('id')
    if not gasto_id:
        return error('ID requerido')

    gasto = db.session.get(TiendaGasto, gasto_id)
    if not gasto:
        return error('Gasto no encontrado', 404)

    try:
        db.session.delete(gasto)
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al eliminar el gasto')

    return jsonify({'success': True, 'message': 'Gasto eliminado'})
