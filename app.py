import logging
import os

import click
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from config import config
from models import db, login_manager
from models.database import Usuario
from routes.auth import auth_bp
from routes.clientes import clientes_bp
from routes.configuracion import configuracion_bp
from routes.cotizaciones import cotizaciones_bp
from routes.dashboard import dashboard_bp
from routes.deuda import deuda_bp
from routes.dinero import dinero_bp
from routes.estadisticas import estadisticas_bp
from routes.inventory import inventory_bp
from routes.movimientos import movimientos_bp
from routes.tienda_envios import tienda_envios_bp
from routes.tienda_gastos import tienda_gastos_bp
from routes.tienda_inventario import tienda_inventario_bp
from routes.tienda_ventas import tienda_ventas_bp
from routes.tiendas import tiendas_bp
from routes.users import users_bp


BLUEPRINTS = (
    auth_bp,
    users_bp,
    inventory_bp,
    clientes_bp,
    cotizaciones_bp,
    tiendas_bp,
    tienda_inventario_bp,
    tienda_envios_bp,
    tienda_ventas_bp,
    tienda_gastos_bp,
    movimientos_bp,
    estadisticas_bp,
    deuda_bp,
    dinero_bp,
    dashboard_bp,
    configuracion_bp,
)


def create_app(config_name=None):
    """Factory para crear la aplicación Flask"""

    # Determinar el entorno
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config[config_name])
    app.json.ensure_ascii = False

    if not app.debug and not app.testing:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )

    # Inicializar extensiones
    db.init_app(app)
    login_manager.init_app(app)

    for blueprint in BLUEPRINTS:
        app.register_blueprint(blueprint)

    register_error_handlers(app)
    register_commands(app)

    @app.get('/health')
    def health_check():
        return jsonify({'status': 'ok'})

    # Crear tablas si no existen
    with app.app_context():
        db.create_all()

    return app


def register_error_handlers(app):
    mensajes = {
        401: 'No autorizado',
        403: 'Acceso denegado',
        404: 'Recurso no encontrado',
        405: 'Método no permitido',
        413: 'Archivo demasiado grande',
    }

    @app.errorhandler(HTTPException)
    def http_error(error):
        mensaje = mensajes.get(error.code, error.description)
        return jsonify({'error': mensaje}), error.code

    @app.errorhandler(500)
    def server_error(error):
        db.session.rollback()
        app.logger.exception('Error interno: %s', error)
        return jsonify({'error': 'Error interno del servidor'}), 500


def register_commands(app):
    @app.cli.command('init-db')
    def init_db():
        db.create_all()
        click.echo('Tablas creadas o verificadas.')

    @app.cli.command('create-admin')
    @click.option('--username', default='admin', show_default=True)
    @click.option('--full-name', default='Administrador NICMAT', show_default=True)
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
    def create_admin(username, full_name, password):
        if Usuario.query.filter_by(username=username).first():
            click.echo('El usuario ya existe.')
            return

        usuario = Usuario(username=username, full_name=full_name, role='admin', is_active=True)
        usuario.set_password(password)
        db.session.add(usuario)
        db.session.commit()
        click.echo('Usuario admin creado.')


if __name__ == '__main__':
    app = create_app()

    # Obtener configuración del host y puerto
    host = app.config.get('APP_HOST', '0.0.0.0')
    port = app.config.get('APP_PORT', 5000)
    debug = app.config.get('DEBUG', True)

    print(f"\n{'='*50}")
    print(f"🔋 {app.config.get('APP_NAME')}")
    print(f"{'='*50}")
    print(f"📍 Servidor: http://{host}:{port}")
    print(f"🔧 Modo: {'Desarrollo' if debug else 'Producción'}")
    print(f"{'='*50}\n")

    app.run(host=host, port=port, debug=debug)
