from flask import Blueprint, jsonify, request
from flask_login import login_required
from sqlalchemy.exc import SQLAlchemyError

from routes.utils import db_error, error, rango_fechas
from services.reportes import PERIODOS, estadisticas_tiendas, estadisticas_ventas, rango_periodo

estadisticas_bp = Blueprint('estadisticas', __name__, url_prefix='/api/estadisticas')

GENERADORES = {
    'ventas': estadisticas_ventas,
    'tiendas': estadisticas_tiendas,
}


@estadisticas_bp.get('')
@login_required
def estadisticas():
    generador = GENERADORES.get(request.args.get('tipo'))
    if generador is None:
        return error('Tipo de estadística no válido')

    try:
        desde, hasta = rango_fechas()
    except ValueError as exc:
        return error(str(exc))
    # Las fechas explícitas solo cuentan si vienen las dos
    if not (desde and hasta):
        periodo = request.args.get('periodo') or 'mes'
        if periodo not in PERIODOS:
            return error('Periodo no válido')
        desde, hasta = rango_periodo(periodo)

    try:
        data = generador(desde, hasta)
    except SQLAlchemyError:
        return db_error('Error al obtener estadísticas')
    return jsonify(data)
