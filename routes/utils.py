import math
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from functools import wraps

from flask import current_app, jsonify, request
from flask_login import current_user

from models import db


def error(mensaje, status=400):
    return jsonify({'error': mensaje}), status


def db_error(mensaje):
    """Deshacer la sesión, registrar la excepción y responder 500"""
    db.session.rollback()
    current_app.logger.exception(mensaje)
    return error(mensaje, 500)


def admin_required(view):
    """Solo usuarios con rol admin"""
    @wraps(view)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated:
            return error('No autorizado', 401)
        if current_user.role != 'admin':
            return error('Acceso denegado', 403)
        return view(*args, **kwargs)
    return wrapper


def arg_true(nombre):
    return (request.args.get(nombre) or '').strip().lower() == 'true'


def arg_filtro(nombre):
    """Valor de filtro de la query string; '_all' equivale a sin filtro"""
    valor = (request.args.get(nombre) or '').strip()
    if not valor or valor == '_all':
        return None
    return valor


def json_body():
    return request.get_json(silent=True) or {}


def texto(valor):
    return str(valor).strip() if valor is not None else ''


def parse_decimal(valor, default=Decimal('0')):
    """Decimal a partir de números o textos; ValueError si no es válido"""
    if valor is None or valor == '':
        return default
    try:
        resultado = Decimal(str(valor).strip().replace(',', '.'))
    except InvalidOperation:
        raise ValueError(f'Número inválido: {valor}')
    if not resultado.is_finite():
        raise ValueError(f'Número inválido: {valor}')
    return resultado


def parse_int(valor, default=0):
    if valor is None or valor == '':
        return default
    try:
        numero = Decimal(str(valor).strip())
    except InvalidOperation:
        raise ValueError(f'Cantidad inválida: {valor}')
    if not numero.is_finite():
        raise ValueError(f'Cantidad inválida: {valor}')
    return int(numero)


def parse_date(valor):
    """Fecha en formato YYYY-MM-DD o DD/MM/YYYY; None si no se puede leer"""
    if not valor:
        return None
    if isinstance(valor, datetime):
        return valor.date()
    if isinstance(valor, date):
        return valor
    for fmt in ('%Y-%m-%d', '%d/%m/%Y'):
        try:
            return datetime.strptime(str(valor)[:10], fmt).date()
        except ValueError:
            continue
    return None


def lineas_de_stock(productos, clave_id):
    """Validar líneas de productos con id y cantidad entera positiva"""
    if not isinstance(productos, list) or not productos:
        raise ValueError('productos es requerido')
    lineas = []
    for producto in productos:
        if not isinstance(producto, dict) or not producto.get(clave_id):
            raise ValueError('Producto inválido')
        cantidad = parse_int(producto.get('cantidad'))
        if cantidad <= 0:
            raise ValueError(
                f"Cantidad inválida para {producto.get('marca', '')} {producto.get('amperaje', '')}"
            )
        lineas.append({**producto, 'cantidad': cantidad})
    return lineas


def rango_fechas():
    """fechaDesde / fechaHasta de la query string; ValueError si son inválidas"""
    desde_raw = request.args.get('fechaDesde')
    hasta_raw = request.args.get('fechaHasta')
    desde = parse_date(desde_raw)
    hasta = parse_date(hasta_raw)
    if (desde_raw and not desde) or (hasta_raw and not hasta):
        raise ValueError('Fecha inválida')
    if desde and hasta and hasta < desde:
        raise ValueError('Rango de fechas inválido')
    return desde, hasta


def pagina_y_limite(limite_defecto):
    try:
        page = max(1, int(request.args.get('page', 1)))
    except (TypeError, ValueError):
        page = 1
    try:
        limit = max(1, int(request.args.get('limit', limite_defecto)))
    except (TypeError, ValueError):
        limit = limite_defecto
    return page, limit


def paginar(query, limite_defecto):
    """Aplicar page/limit y devolver (items, total, page, totalPages)"""
    page, limit = pagina_y_limite(limite_defecto)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, total, page, math.ceil(total / limit) if total else 0


def unicos(valores):
    """Valores no vacíos sin repetir, ordenados"""
    return sorted({v for v in valores if v})
