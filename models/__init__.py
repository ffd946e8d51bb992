from flask import jsonify
from flask_login import LoginManager
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
login_manager = LoginManager()


@login_manager.unauthorized_handler
def unauthorized():
    """Las rutas de la API responden 401 en lugar de redirigir"""
    return jsonify({'error': 'No autorizado'}), 401


from models.database import (  # noqa: E402,F401
    Cliente,
    Cotizacion,
    DeudaConfig,
    DeudaOperacion,
    DineroOperacion,
    EmpresaConfig,
    EnvioItem,
    Inventario,
    PdfConfig,
    Tienda,
    TiendaEnvio,
    TiendaGasto,
    TiendaInventario,
    TiendaVenta,
    TiendaVentaItem,
    UserPresence,
    Usuario,
)
