from flask import Blueprint, current_app, jsonify, request
from flask_login import login_required
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.database import TIPOS_TIENDA, Tienda
from routes.utils import arg_filtro, arg_true, db_error, error, json_body, paginar, texto, unicos
from services.envios import cancelar_envio

tiendas_bp = Blueprint('tiendas', __name__, url_prefix='/api/tiendas')

CAMPOS_OPCIONALES = ('encargado', 'ciudad', 'direccion')


@tiendas_bp.get('')
@login_required
def listar():
    tienda_id = request.args.get('id')
    if tienda_id:
        tienda = db.session.get(Tienda, tienda_id)
        if not tienda:
            return error('Tienda no encontrada', 404)
        return jsonify({'tienda': tienda.to_dict()})

    # Lista corta para selects
    if arg_true('getAll'):
        tiendas = Tienda.query.order_by(Tienda.nombre).all()
        return jsonify({
            'tiendas': [{'id': t.id, 'nombre': t.nombre, 'tipo': t.tipo} for t in tiendas]
        })

    query = Tienda.query
    tipo = arg_filtro('tipo')
    ciudad = arg_filtro('ciudad')
    if tipo and tipo not in TIPOS_TIENDA:
        return error('Tipo de tienda inválido')
    if tipo:
        query = query.filter(Tienda.tipo == tipo)
    if ciudad:
        query = query.filter(Tienda.ciudad == ciudad)

    items, total, page, total_pages = paginar(query.order_by(Tienda.created_at.desc()), 10)
    por_tipo = dict(db.session.query(Tienda.tipo, func.count(Tienda.id)).group_by(Tienda.tipo).all())
    ciudades = [fila[0] for fila in db.session.query(Tienda.ciudad).distinct()]

    return jsonify({
        'tiendas': [t.to_dict() for t in items],
        'total': total,
        'page': page,
        'totalPages': total_pages,
        'stats': {
            'total': sum(por_tipo.values()),
            'casaMatriz': por_tipo.get('casa_matriz', 0),
            'sucursales': por_tipo.get('sucursal', 0),
        },
        'ciudades': unicos(ciudades),
    })


@tiendas_bp.post('')
@login_required
def crear():
    data = json_body()
    nombre = texto(data.get('nombre'))
    tipo = texto(data.get('tipo'))
    if not nombre or not tipo:
        return error('Nombre y tipo son requeridos')
    if tipo not in TIPOS_TIENDA:
        return error('Tipo de tienda inválido')

    tienda = Tienda(nombre=nombre, tipo=tipo)
    for campo in CAMPOS_OPCIONALES:
        setattr(tienda, campo, texto(data.get(campo)) or None)

    try:
        db.session.add(tienda)
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al crear tienda')

    return jsonify({'tienda': tienda.to_dict(), 'message': 'Tienda creada exitosamente'})


@tiendas_bp.patch('')
@login_required
def actualizar():
    data = json_body()
    if not data.get('id'):
        return error('ID requerido')

    tienda = db.session.get(Tienda, data['id'])
    if not tienda:
        return error('Tienda no encontrada', 404)

    if 'nombre' in data:
        if not texto(data['nombre']):
            return error('El nombre es requerido')
        tienda.nombre = texto(data['nombre'])
    if 'tipo' in data:
        if data['tipo'] not in TIPOS_TIENDA:
            return error('Tipo de tienda inválido')
        tienda.tipo = data['tipo']
    for campo in CAMPOS_OPCIONALES:
        if campo in data:
            setattr(tienda, campo, texto(data[campo]) or None)

    try:
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al actualizar tienda')

    return jsonify({'tienda': tienda.to_dict(), 'message': 'Tienda actualizada'})


@tiendas_bp.delete('')
@login_required
def eliminar():
    tienda_id = request.args.get('id')
    if not tienda_id:
        return error('ID requerido')

    tienda = db.session.get(Tienda, tienda_id)
    if not tienda:
        return error('Tienda no encontrada', 404)

    try:
        # Los envíos en curso devuelven su stock antes de borrar la tienda
        for envio in list(tienda.envios):
            if envio.estado != 'completado':
                cancelar_envio(envio)
        db.session.delete(tienda)
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al eliminar tienda')

    current_app.logger.info('Tienda %s eliminada', tienda_id)
    return jsonify({'message': 'Tienda eliminada'})
