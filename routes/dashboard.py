from flask import Blueprint, current_app, jsonify
from flask_login import login_required, current_user
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.database import Cliente, Cotizacion, Inventario, Tienda, TiendaEnvio
from routes.utils import db_error

# Blueprint del panel principal
dashboard_bp = Blueprint('dashboard', __name__, url_prefix='/api')


@dashboard_bp.get('/alerts')
@login_required
def alertas():
    """Productos del inventario central con stock bajo"""
    umbral = current_app.config.get('STOCK_BAJO_UMBRAL', 5)
    try:
        productos = Inventario.query.filter(Inventario.cantidad < umbral).order_by(
            Inventario.cantidad.asc(), Inventario.marca
        ).all()
    except SQLAlchemyError:
        return db_error('Error al obtener alertas')

    agotados = [p for p in productos if p.cantidad <= 0]
    return jsonify({
        'stockBajo': {
            'total': len(productos),
            'agotados': len(agotados),
            'bajos': len(productos) - len(agotados),
            'productos': [
                {'id': p.id, 'marca': p.marca, 'amperaje': p.amperaje, 'cantidad': p.cantidad}
                for p in productos
            ],
            'umbral': umbral,
        }
    })


@dashboard_bp.get('/dashboard')
@login_required
def index():
    """Contadores de la página principal"""
    productos, unidades = db.session.query(
        func.count(Inventario.id), func.coalesce(func.sum(Inventario.cantidad), 0)
    ).one()

    stats = {
        'total_productos': productos,
        'total_unidades': int(unidades),
        'total_clientes': Cliente.query.count(),
        'total_tiendas': Tienda.query.count(),
        'cotizaciones_pendientes': Cotizacion.query.filter_by(estado='pendiente').count(),
        'envios_pendientes': TiendaEnvio.query.filter(
            TiendaEnvio.estado.in_(('pendiente', 'precios_asignados'))
        ).count(),
    }

    return jsonify({'stats': stats, 'usuario': current_user.to_dict()})
