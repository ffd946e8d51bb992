from flask import Blueprint, jsonify, request
from flask_login import login_required
from sqlalchemy.exc import SQLAlchemyError

from routes.utils import db_error, error, rango_fechas
from services.reportes import resumen_financiero

movimientos_bp = Blueprint('movimientos', __name__, url_prefix='/api/movimientos')


@movimientos_bp.get('')
@login_required
def resumen():
    """Resumen financiero de ventas directas, tiendas y gastos"""
    try:
        desde, hasta = rango_fechas()
    except ValueError as exc:
        return error(str(exc))

    try:
        data = resumen_financiero(desde, hasta, request.args.get('tiendaId') or None)
    except SQLAlchemyError:
        return db_error('Error al obtener resumen')
    return jsonify(data)
