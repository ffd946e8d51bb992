import io
from datetime import date

from flask import Blueprint, current_app, jsonify, request, send_file
from flask_login import current_user, login_required
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.database import Tienda, TiendaEnvio
from routes.utils import arg_filtro, db_error, error, json_body, lineas_de_stock
from services.envios import (
    EnvioError,
    asignar_precios,
    cambiar_estado,
    cancelar_envio,
    confirmar_envio,
    crear_envio,
    promover_si_completo,
)
from services.excel import XLSX_MIMETYPE, excel_envio, leer_excel, precio_positivo, precios_desde_excel
from services.stock import StockError

tienda_envios_bp = Blueprint('tienda_envios', __name__, url_prefix='/api/tienda-envios')


@tienda_envios_bp.get('')
@login_required
def listar():
    envio_id = request.args.get('envioId')
    if envio_id:
        envio = db.session.get(TiendaEnvio, envio_id)
        if not envio:
            return error('Envío no encontrado', 404)
        return jsonify({
            'envio': envio.to_dict(),
            'items': [item.to_dict() for item in envio.items],
        })

    tienda_id = request.args.get('tiendaId')
    if not tienda_id:
        return error('tiendaId requerido')

    query = TiendaEnvio.query.filter_by(tienda_id=tienda_id)
    estado = arg_filtro('estado')
    if estado:
        query = query.filter(TiendaEnvio.estado == estado)
    envios = query.order_by(TiendaEnvio.created_at.desc()).all()
    return jsonify({'envios': [e.to_dict() for e in envios]})


@tienda_envios_bp.post('')
@login_required
def crear():
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

    created_by = data.get('createdBy') or getattr(current_user, 'id', None)
    try:
        envio = crear_envio(tienda_id, productos, created_by=created_by)
        db.session.commit()
    except StockError as exc:
        db.session.rollback()
        return error(str(exc))
    except SQLAlchemyError:
        return db_error('Error al crear el envío')

    return jsonify({
        'success': True,
        'message': f'Envío creado con {envio.total_productos} productos ({envio.total_unidades} unidades)',
        'envio': envio.to_dict(),
    })


def precios_de_items(items):
    """Mapa item_id -> precio a partir de [{id, precio_tienda}]"""
    if not isinstance(items, list) or not items:
        raise EnvioError('items es requerido')
    precios = {}
    for item in items:
        if not isinstance(item, dict) or not item.get('id'):
            raise EnvioError('Item inválido')
        precio = precio_positivo(item.get('precio_tienda'))
        if precio is None:
            raise EnvioError(f"Precio inválido para el item {item['id']}")
        precios[item['id']] = precio
    return precios


@tienda_envios_bp.patch('')
@login_required
def actualizar():
    data = json_body()
    envio_id = data.get('envioId')
    if not envio_id:
        return error('envioId requerido')

    envio = db.session.get(TiendaEnvio, envio_id)
    if not envio:
        return error('Envío no encontrado', 404)

    action = data.get('action')
    try:
        if action == 'importar_precios':
            actualizados = asignar_precios(envio, precios_de_items(data.get('items')))
            respuesta = {
                'success': True,
                'message': f'{actualizados} precios actualizados',
                'actualizados': actualizados,
                'todosConPrecio': envio.todos_con_precio(),
            }
        elif action == 'confirmar':
            transferidos = confirmar_envio(envio)
            respuesta = {
                'success': True,
                'message': f'Envío confirmado: {transferidos} productos agregados al inventario de la tienda',
            }
        elif data.get('estado'):
            cambiar_estado(envio, data['estado'])
            respuesta = {'success': True, 'message': 'Estado actualizado'}
        else:
            return error('Acción no válida')
        db.session.commit()
    except EnvioError as exc:
        db.session.rollback()
        return error(str(exc))
    except SQLAlchemyError:
        return db_error('Error al actualizar el envío')

    respuesta['envio'] = envio.to_dict()
    return jsonify(respuesta)


@tienda_envios_bp.delete('')
@login_required
def eliminar():
    envio_id = request.args.get('envioId')
    if not envio_id:
        return error('envioId requerido')

    envio = db.session.get(TiendaEnvio, envio_id)
    if not envio:
        return error('Envío no encontrado', 404)

    try:
        cantidad = cancelar_envio(envio)
        db.session.commit()
    except EnvioError as exc:
        db.session.rollback()
        return error(str(exc))
    except SQLAlchemyError:
        return db_error('Error al eliminar el envío')

    return jsonify({
        'success': True,
        'message': f'Envío eliminado y {cantidad} productos devueltos al inventario',
    })


@tienda_envios_bp.get('/excel')
@login_required
def exportar_excel():
    envio_id = request.args.get('envioId')
    if not envio_id:
        return error('envioId requerido')

    envio = db.session.get(TiendaEnvio, envio_id)
    if not envio:
        return error('Envío no encontrado', 404)
    if not envio.items:
        return error('No hay items en este envío')

    nombre = (envio.tienda.nombre if envio.tienda else 'Tienda').replace(' ', '_')
    return send_file(
        excel_envio(envio),
        as_attachment=True,
        download_name=f'Envio_{nombre}_{date.today().isoformat()}.xlsx',
        mimetype=XLSX_MIMETYPE,
    )


@tienda_envios_bp.post('/excel')
@login_required
def importar_excel():
    """Importar el Excel de precios devuelto por la tienda"""
    archivo = request.files.get('file')
    envio_id = request.form.get('envioId')
    if not archivo or not envio_id:
        return error('Archivo y envioId son requeridos')

    envio = db.session.get(TiendaEnvio, envio_id)
    if not envio:
        return error('Envío no encontrado', 404)
    if envio.estado == 'completado':
        return error('No se puede modificar un envío completado')

    try:
        registros = leer_excel(io.BytesIO(archivo.read()))
    except ValueError as exc:
        return error(str(exc))

    precios, no_encontradas = precios_desde_excel(registros, envio.items)
    try:
        actualizados = asignar_precios(envio, precios)
        todos = promover_si_completo(envio)
        db.session.commit()
    except EnvioError as exc:
        db.session.rollback()
        return error(str(exc))
    except SQLAlchemyError:
        return db_error('Error al importar precios')

    sin_precio = sum(1 for item in envio.items if item.precio_tienda is None)
    if no_encontradas:
        current_app.logger.warning('Envío %s: %s filas del Excel sin item', envio.id, no_encontradas)
    return jsonify({
        'success': True,
        'message': f'{actualizados} precios importados',
        'actualizados': actualizados,
        'sinPrecio': sin_precio,
        'errores': no_encontradas,
        'todosConPrecio': todos,
    })
