import pytest

from app import create_app
from models import db
from models.database import Inventario, Tienda, TiendaInventario, Usuario

ADMIN = {'username': 'admin', 'password': 'admin123'}


@pytest.fixture()
def app():
    app = create_app('testing')
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_usuario(app):
    def _make(username='vendedor', password='secreto1', role='user', is_active=True):
        with app.app_context():
            usuario = Usuario(username=username, full_name=username.title(), role=role, is_active=is_active)
            usuario.set_password(password)
            db.session.add(usuario)
            db.session.commit()
            return usuario.id
    return _make


@pytest.fixture()
def auth_client(app, make_usuario):
    """Cliente con sesión de administrador"""
    make_usuario(ADMIN['username'], ADMIN['password'], role='admin')
    client = app.test_client()
    response = client.post('/api/auth/login', json=ADMIN)
    assert response.status_code == 200
    return client


@pytest.fixture()
def make_producto(app):
    def _make(marca='Toyo', amperaje='45 Amp', cantidad=10, costo=100, precio_venta=150):
        with app.app_context():
            producto = Inventario(
                marca=marca, amperaje=amperaje, cantidad=cantidad, costo=costo, precio_venta=precio_venta
            )
            db.session.add(producto)
            db.session.commit()
            return producto.id
    return _make


@pytest.fixture()
def make_tienda(app):
    def _make(nombre='Sucursal Norte', tipo='sucursal', ciudad='Santa Cruz'):
        with app.app_context():
            tienda = Tienda(nombre=nombre, tipo=tipo, ciudad=ciudad)
            db.session.add(tienda)
            db.session.commit()
            return tienda.id
    return _make


@pytest.fixture()
def make_stock_tienda(app):
    def _make(tienda_id, marca='Toyo', amperaje='45 Amp', cantidad=5, costo=100, precio_venta=180):
        with app.app_context():
            item = TiendaInventario(
                tienda_id=tienda_id, marca=marca, amperaje=amperaje,
                cantidad=cantidad, costo=costo, precio_venta=precio_venta,
            )
            db.session.add(item)
            db.session.commit()
            return item.id
    return _make


@pytest.fixture()
def leer(app):
    """Leer un registro como diccionario, o None si no existe"""
    def _leer(model, record_id):
        with app.app_context():
            registro = db.session.get(model, record_id)
            return registro.to_dict() if registro else None
    return _leer
