import io
from datetime import date

from flask import Blueprint, current_app, jsonify, request, send_file
from flask_login import login_required
from sqlalchemy import case, func, or_
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.database import Cliente
from routes.utils import (
    arg_true,
    db_error,
    error,
    json_body,
    pagina_y_limite,
    paginar,
    texto,
    unicos,
)
from services.excel import XLSX_MIMETYPE, crear_excel, leer_excel

clientes_bp = Blueprint('clientes', __name__, url_prefix='/api/clientes')

EXCEL_HEADERS = ['Nombre', 'Teléfono', 'Email', 'Dirección']
CHUNK_SIZE = 500


def normalizar_cliente(row):
    def valor(*claves):
        for clave in claves:
            if row.get(clave) not in (None, ''):
                return texto(row[clave])
        return ''

    return {
        'nombre': valor('nombre', 'Nombre'),
        'telefono': valor('telefono', 'Telefono', 'Teléfono'),
        'email': valor('email', 'Email'),
        'direccion': valor('direccion', 'Direccion', 'Dirección'),
    }


def importar_clientes(registros, mode):
    """Alta masiva de clientes; devuelve (payload, status)"""
    items = [normalizar_cliente(r) for r in registros if isinstance(r, dict)]
    items = [i for i in items if i['nombre']]
    if not items:
        return {'error': 'No se encontraron clientes válidos en el archivo'}, 400

    if mode == 'analyze':
        return {'success': True, 'analysis': {'total': len(items), 'preview': items[:10]}}, 200

    insertados = 0
    try:
        for inicio in range(0, len(items), CHUNK_SIZE):
            lote = items[inicio:inicio + CHUNK_SIZE]
            db.session.add_all([Cliente(**item) for item in lote])
            db.session.flush()
            insertados += len(lote)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception('Error en importación de clientes')
        return {'error': 'Error al importar clientes'}, 500

    return {'success': True, 'inserted': insertados, 'total': insertados}, 200


def filtros_clientes(query):
    search = (request.args.get('search') or '').strip()
    if search:
        patron = f'%{search}%'
        query = query.filter(
            or_(
                Cliente.nombre.ilike(patron),
                Cliente.telefono.ilike(patron),
                Cliente.email.ilike(patron),
                Cliente.direccion.ilike(patron),
            )
        )
    for campo in ('nombre', 'telefono', 'direccion'):
        valor = (request.args.get(campo) or '').strip()
        if valor:
            query = query.filter(getattr(Cliente, campo) == valor)
    return query


def con_valor(columna):
    """Cuenta filas con la columna no vacía"""
    return func.sum(case((func.length(func.trim(func.coalesce(columna, ''))) > 0, 1), else_=0))


@clientes_bp.get('')
@login_required
def listar():
    # Autocompletado para cotizaciones
    busqueda = (request.args.get('searchCliente') or '').strip()
    if busqueda:
        clientes = (
            Cliente.query.filter(Cliente.nombre.ilike(f'%{busqueda}%'))
            .order_by(Cliente.nombre)
            .limit(10)
            .all()
        )
        return jsonify({'clientes': [c.to_dict() for c in clientes]})

    for flag, campo, clave in (
        ('getNombres', 'nombre', 'nombres'),
        ('getTelefonos', 'telefono', 'telefonos'),
        ('getDirecciones', 'direccion', 'direcciones'),
    ):
        if arg_true(flag):
            valores = [fila[0] for fila in db.session.query(getattr(Cliente, campo)).distinct()]
            return jsonify({clave: unicos(v.strip() for v in valores if v)})

    query = filtros_clientes(Cliente.query).order_by(Cliente.nombre)

    if arg_true('noPagination'):
        items = query.all()
        return jsonify({'items': [c.to_dict() for c in items], 'total': len(items)})

    items, total, page, total_pages = paginar(query, 5)
    fila = db.session.query(
        func.count(Cliente.id),
        con_valor(Cliente.email),
        con_valor(Cliente.telefono),
        con_valor(Cliente.direccion),
    ).one()

    return jsonify({
        'items': [c.to_dict() for c in items],
        'total': total,
        'page': page,
        'limit': pagina_y_limite(5)[1],
        'totalPages': total_pages,
        'stats': {
            'totalClientes': int(fila[0] or 0),
            'conEmail': int(fila[1] or 0),
            'conTelefono': int(fila[2] or 0),
            'conDireccion': int(fila[3] or 0),
        },
    })


@clientes_bp.post('')
@login_required
def crear():
    data = request.get_json(silent=True)

    if isinstance(data, list):
        payload, status = importar_clientes(data, request.args.get('mode'))
        return jsonify(payload), status

    campos = normalizar_cliente(data or {})
    if not campos['nombre']:
        return error('El nombre es requerido')

    cliente = Cliente(**campos)
    try:
        db.session.add(cliente)
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al crear cliente')

    return jsonify({'success': True, 'item': cliente.to_dict()})


@clientes_bp.patch('')
@login_required
def actualizar():
    data = json_body()
    if not data.get('id'):
        return error('ID requerido')

    cliente = db.session.get(Cliente, data['id'])
    if not cliente:
        return error('Cliente no encontrado', 404)

    campos = normalizar_cliente(data)
    if 'nombre' in data and not campos['nombre']:
        return error('El nombre es requerido')
    if campos['nombre']:
        cliente.nombre = campos['nombre']
    cliente.telefono = campos['telefono']
    cliente.email = campos['email']
    cliente.direccion = campos['direccion']

    try:
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al actualizar')

    return jsonify({'success': True, 'item': cliente.to_dict()})


@clientes_bp.delete('')
@login_required
def eliminar():
    try:
        if arg_true('all'):
            Cliente.query.delete()
            db.session.commit()
            return jsonify({'success': True, 'message': 'Todos los clientes eliminados'})

        cliente_id = request.args.get('id')
        if not cliente_id:
            return error('ID requerido')
        cliente = db.session.get(Cliente, cliente_id)
        if not cliente:
            return error('Cliente no encontrado', 404)
        db.session.delete(cliente)
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al eliminar')

    return jsonify({'success': True})


@clientes_bp.get('/excel')
@login_required
def exportar_excel():
    clientes = filtros_clientes(Cliente.query).order_by(Cliente.nombre).all()
    rows = [[c.nombre, c.telefono or '', c.email or '', c.direccion or ''] for c in clientes]
    output = crear_excel(EXCEL_HEADERS, rows, 'Clientes', widths=[35, 18, 30, 40])
    return send_file(
        output,
        as_attachment=True,
        download_name=f'Clientes_{date.today().isoformat()}.xlsx',
        mimetype=XLSX_MIMETYPE,
    )


@clientes_bp.post('/excel')
@login_required
def importar_excel():
    archivo = request.files.get('file')
    if not archivo or not archivo.filename:
        return error('Archivo requerido')

    try:
        registros = leer_excel(io.BytesIO(archivo.read()))
    except ValueError as exc:
        return error(str(exc))

    payload, status = importar_clientes(
        registros, request.args.get('mode') or request.form.get('mode')
    )
    return jsonify(payload), status
