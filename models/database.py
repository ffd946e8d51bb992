from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

from werkzeug.security import generate_password_hash, check_password_hash
from flask_login import UserMixin
from models import db, login_manager


ESTADOS_ENVIO = ('pendiente', 'precios_asignados', 'completado', 'cancelado')
ESTADOS_COTIZACION = ('pendiente', 'aceptada', 'rechazada', 'convertida')
TIPOS_TIENDA = ('casa_matriz', 'sucursal')
ROLES = ('admin', 'user')

PERMISOS_POR_DEFECTO = {
    'inventario': True,
    'tiendas': True,
    'cotizaciones': True,
    'estadisticas': True,
}


def new_id():
    return str(uuid4())


def money(value):
    """Convertir Numeric a float para JSON"""
    if value is None:
        return 0.0
    return float(value)


def iso(value):
    return value.isoformat() if value else None


@login_manager.user_loader
def load_user(user_id):
    """Cargar usuario por ID para Flask-Login"""
    return db.session.get(Usuario, user_id)


class TimestampMixin:
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Usuario(UserMixin, db.Model):
    """Usuarios del sistema"""
    __tablename__ = 'users'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    username = db.Column(db.String(50), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(100))
    role = db.Column(db.Enum(*ROLES, name='rol_enum'), default='user', nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    permissions = db.Column(db.JSON)
    last_login = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    presence = db.relationship(
        'UserPresence', backref='user', uselist=False, cascade='all, delete-orphan'
    )

    def set_password(self, password):
        """Hashear y guardar contraseña"""
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        """Verificar contraseña"""
        return check_password_hash(self.password_hash, password)

    def actualizar_ultimo_acceso(self):
        """Actualizar timestamp de último acceso"""
        self.last_login = datetime.utcnow()
        db.session.commit()

    @property
    def is_admin(self):
        return self.role == 'admin'

    def to_dict(self):
        data = {
            'id': self.id,
            'username': self.username,
            'fullName': self.full_name,
            'role': self.role,
            'isActive': self.is_active,
            'lastLogin': iso(self.last_login),
            'createdAt': iso(self.created_at),
            'permissions': self.permissions or dict(PERMISOS_POR_DEFECTO),
        }
        if self.presence:
            data['isOnline'] = self.presence.is_online
            data['lastSeen'] = iso(self.presence.last_seen)
        else:
            data['isOnline'] = False
            data['lastSeen'] = None
        return data

    def __repr__(self):
        return f'<Usuario {self.username}>'


class UserPresence(db.Model):
    """Último latido de cada usuario conectado"""
    __tablename__ = 'user_presence'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.String(36), db.ForeignKey('users.id', ondelete='CASCADE'), unique=True, nullable=False
    )
    is_online = db.Column(db.Boolean, default=False)
    last_seen = db.Column(db.DateTime, default=datetime.utcnow)
    session_id = db.Column(db.String(64))


class Inventario(TimestampMixin, db.Model):
    """Inventario central de baterías"""
    __tablename__ = 'inventory'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    marca = db.Column(db.String(100), nullable=False, index=True)
    amperaje = db.Column(db.String(50), nullable=False)
    cantidad = db.Column(db.Integer, default=0, nullable=False)
    costo = db.Column(db.Numeric(12, 2), default=0)
    precio_venta = db.Column(db.Numeric(12, 2), default=0)

    def to_dict(self):
        return {
            'id': self.id,
            'marca': self.marca,
            'amperaje': self.amperaje,
            'cantidad': self.cantidad,
            'costo': money(self.costo),
            'precio_venta': money(self.precio_venta),
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
        }

    def __repr__(self):
        return f'<Inventario {self.marca} {self.amperaje}>'


class Cliente(TimestampMixin, db.Model):
    """Modelo de clientes"""
    __tablename__ = 'clientes'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    nombre = db.Column(db.String(150), nullable=False, index=True)
    telefono = db.Column(db.String(50), default='')
    email = db.Column(db.String(120), default='')
    direccion = db.Column(db.String(255), default='')

    def to_dict(self):
        return {
            'id': self.id,
            'nombre': self.nombre,
            'telefono': self.telefono or '',
            'email': self.email or '',
            'direccion': self.direccion or '',
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
        }

    def __repr__(self):
        return f'<Cliente {self.nombre}>'


class Cotizacion(TimestampMixin, db.Model):
    """Cotizaciones para clientes"""
    __tablename__ = 'cotizaciones'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    numero = db.Column(db.String(30), unique=True, index=True)
    fecha = db.Column(db.Date, default=date.today)
    cliente_nombre = db.Column(db.String(150), default='')
    cliente_telefono = db.Column(db.String(50), default='')
    cliente_email = db.Column(db.String(120), default='')
    cliente_direccion = db.Column(db.String(255), default='')
    productos = db.Column(db.JSON, default=list)
    total_unidades = db.Column(db.Integer, default=0)
    subtotal = db.Column(db.Numeric(12, 2), default=0)
    descuento = db.Column(db.Numeric(12, 2), default=0)
    total = db.Column(db.Numeric(12, 2), default=0)
    estado = db.Column(db.String(20), default='pendiente', index=True)
    vigencia_dias = db.Column(db.Integer, default=7)
    fecha_vencimiento = db.Column(db.Date)
    terminos = db.Column(db.Text)

    def calcular_totales(self):
        """Calcular unidades, subtotal y total a partir de los productos"""
        productos = self.productos or []
        self.total_unidades = sum(int(p.get('cantidad') or 0) for p in productos)
        self.subtotal = sum(
            (Decimal(str(p.get('total') or 0)) for p in productos), Decimal('0')
        )
        self.total = self.subtotal - Decimal(str(self.descuento or 0))

    def calcular_vencimiento(self):
        base = self.fecha or date.today()
        self.fecha_vencimiento = base + timedelta(days=int(self.vigencia_dias or 0))

    def to_dict(self):
        return {
            'id': self.id,
            'numero': self.numero,
            'fecha': iso(self.fecha),
            'cliente_nombre': self.cliente_nombre or '',
            'cliente_telefono': self.cliente_telefono or '',
            'cliente_email': self.cliente_email or '',
            'cliente_direccion': self.cliente_direccion or '',
            'productos': self.productos or [],
            'total_unidades': self.total_unidades or 0,
            'subtotal': money(self.subtotal),
            'descuento': money(self.descuento),
            'total': money(self.total),
            'estado': self.estado,
            'vigencia_dias': self.vigencia_dias,
            'fecha_vencimiento': iso(self.fecha_vencimiento),
            'terminos': self.terminos or '',
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
        }

    def __repr__(self):
        return f'<Cotizacion {self.numero}>'


class EmpresaConfig(TimestampMixin, db.Model):
    """Datos de la empresa para PDFs y numeración de cotizaciones"""
    __tablename__ = 'empresa_config'

    DEFAULTS = {
        'nombre': 'NICMAT S.R.L.',
        'nit': '',
        'direccion': '',
        'ciudad': 'Bolivia',
        'telefono_principal': '',
        'telefono_secundario': '',
        'telefono_adicional': '',
        'email': '',
        'logo': None,
        'color_principal': '#1a5f7a',
        'pie_empresa': 'NICMAT S.R.L.',
        'pie_agradecimiento': '¡Gracias por su preferencia!',
        'pie_contacto': '',
        'prefijo_cotizacion': 'COT',
        'siguiente_numero': 1,
    }

    id = db.Column(db.Integer, primary_key=True)
    nombre = db.Column(db.String(150), nullable=False, default='NICMAT S.R.L.')
    nit = db.Column(db.String(30), default='')
    direccion = db.Column(db.String(255), default='')
    ciudad = db.Column(db.String(100), default='Bolivia')
    telefono_principal = db.Column(db.String(30), default='')
    telefono_secundario = db.Column(db.String(30), default='')
    telefono_adicional = db.Column(db.String(30), default='')
    email = db.Column(db.String(120), default='')
    logo = db.Column(db.Text)
    color_principal = db.Column(db.String(10), default='#1a5f7a')
    pie_empresa = db.Column(db.String(255), default='NICMAT S.R.L.')
    pie_agradecimiento = db.Column(db.String(255), default='¡Gracias por su preferencia!')
    pie_contacto = db.Column(db.String(255), default='')
    prefijo_cotizacion = db.Column(db.String(10), default='COT')
    siguiente_numero = db.Column(db.Integer, default=1)

    def to_dict(self):
        data = {'id': self.id}
        for campo in self.DEFAULTS:
            data[campo] = getattr(self, campo)
        return data


class PdfConfig(db.Model):
    """Configuración de reportes PDF por módulo"""
    __tablename__ = 'pdf_config'

    id = db.Column(db.Integer, primary_key=True)
    modulo = db.Column(db.String(50), unique=True, nullable=False)
    config = db.Column(db.JSON, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Tienda(TimestampMixin, db.Model):
    """Tiendas y sucursales"""
    __tablename__ = 'tiendas'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    nombre = db.Column(db.String(150), nullable=False)
    tipo = db.Column(db.Enum(*TIPOS_TIENDA, name='tipo_tienda_enum'), nullable=False)
    encargado = db.Column(db.String(150))
    ciudad = db.Column(db.String(100))
    direccion = db.Column(db.String(255))

    # Relaciones
    inventario = db.relationship(
        'TiendaInventario', backref='tienda', lazy=True, cascade='all, delete-orphan'
    )
    envios = db.relationship(
        'TiendaEnvio', backref='tienda', lazy=True, cascade='all, delete-orphan'
    )
    ventas = db.relationship(
        'TiendaVenta', backref='tienda', lazy=True, cascade='all, delete-orphan'
    )
    gastos = db.relationship(
        'TiendaGasto', backref='tienda', lazy=True, cascade='all, delete-orphan'
    )

    def to_dict(self):
        return {
            'id': self.id,
            'nombre': self.nombre,
            'tipo': self.tipo,
            'encargado': self.encargado,
            'ciudad': self.ciudad,
            'direccion': self.direccion,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
        }

    def __repr__(self):
        return f'<Tienda {self.nombre}>'


class TiendaInventario(TimestampMixin, db.Model):
    """Stock de cada tienda"""
    __tablename__ = 'tienda_inventario'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    tienda_id = db.Column(
        db.String(36), db.ForeignKey('tiendas.id', ondelete='CASCADE'), nullable=False, index=True
    )
    marca = db.Column(db.String(100), nullable=False)
    amperaje = db.Column(db.String(50), nullable=False)
    cantidad = db.Column(db.Integer, default=0, nullable=False)
    costo = db.Column(db.Numeric(12, 2), default=0)
    precio_venta = db.Column(db.Numeric(12, 2), default=0)

    def to_dict(self):
        return {
            'id': self.id,
            'tienda_id': self.tienda_id,
            'marca': self.marca,
            'amperaje': self.amperaje,
            'cantidad': self.cantidad,
            'costo': money(self.costo),
            'precio_venta': money(self.precio_venta),
        }


class TiendaEnvio(TimestampMixin, db.Model):
    """Envío de stock desde el inventario central a una tienda"""
    __tablename__ = 'tienda_envios'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    tienda_id = db.Column(
        db.String(36), db.ForeignKey('tiendas.id', ondelete='CASCADE'), nullable=False, index=True
    )
    estado = db.Column(db.String(20), default='pendiente', nullable=False)
    total_productos = db.Column(db.Integer, default=0)
    total_unidades = db.Column(db.Integer, default=0)
    created_by = db.Column(db.String(36))
    completado_at = db.Column(db.DateTime)

    items = db.relationship(
        'EnvioItem',
        backref='envio',
        lazy=True,
        cascade='all, delete-orphan',
        order_by='EnvioItem.marca',
    )

    def todos_con_precio(self):
        return all(item.precio_tienda is not None for item in self.items)

    def to_dict(self):
        return {
            'id': self.id,
            'tienda_id': self.tienda_id,
            'estado': self.estado,
            'total_productos': self.total_productos,
            'total_unidades': self.total_unidades,
            'created_by': self.created_by,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
            'completado_at': iso(self.completado_at),
        }


class EnvioItem(db.Model):
    """Línea de un envío"""
    __tablename__ = 'tienda_envio_items'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    envio_id = db.Column(
        db.String(36), db.ForeignKey('tienda_envios.id', ondelete='CASCADE'), nullable=False, index=True
    )
    inventory_id = db.Column(
        db.String(36), db.ForeignKey('inventory.id', ondelete='SET NULL'), nullable=True
    )
    marca = db.Column(db.String(100), nullable=False)
    amperaje = db.Column(db.String(50), nullable=False)
    cantidad = db.Column(db.Integer, nullable=False)
    costo_original = db.Column(db.Numeric(12, 2), default=0)
    precio_venta_original = db.Column(db.Numeric(12, 2), default=0)
    precio_tienda = db.Column(db.Numeric(12, 2), nullable=True)

    central = db.relationship(
        'Inventario', backref=db.backref('envio_items', passive_deletes=True)
    )

    def to_dict(self):
        return {
            'id': self.id,
            'envio_id': self.envio_id,
            'inventory_id': self.inventory_id,
            'marca': self.marca,
            'amperaje': self.amperaje,
            'cantidad': self.cantidad,
            'costo_original': money(self.costo_original),
            'precio_venta_original': money(self.precio_venta_original),
            'precio_tienda': money(self.precio_tienda) if self.precio_tienda is not None else None,
        }


class TiendaVenta(db.Model):
    """Venta registrada en una tienda"""
    __tablename__ = 'tienda_ventas'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    tienda_id = db.Column(
        db.String(36), db.ForeignKey('tiendas.id', ondelete='CASCADE'), nullable=False, index=True
    )
    fecha = db.Column(db.Date, default=date.today, index=True)
    total_venta = db.Column(db.Numeric(12, 2), default=0)
    total_costo = db.Column(db.Numeric(12, 2), default=0)
    total_unidades = db.Column(db.Integer, default=0)
    ganancia = db.Column(db.Numeric(12, 2), default=0)
    notas = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    items = db.relationship(
        'TiendaVentaItem',
        backref='venta',
        lazy=True,
        cascade='all, delete-orphan',
        order_by='TiendaVentaItem.marca',
    )

    def to_dict(self, with_items=False):
        data = {
            'id': self.id,
            'tienda_id': self.tienda_id,
            'fecha': iso(self.fecha),
            'total_venta': money(self.total_venta),
            'total_costo': money(self.total_costo),
            'total_unidades': self.total_unidades,
            'ganancia': money(self.ganancia),
            'notas': self.notas,
            'created_at': iso(self.created_at),
        }
        if with_items:
            data['items'] = [item.to_dict() for item in self.items]
        return data


class TiendaVentaItem(db.Model):
    """Línea de venta de tienda"""
    __tablename__ = 'tienda_venta_items'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    venta_id = db.Column(
        db.String(36), db.ForeignKey('tienda_ventas.id', ondelete='CASCADE'), nullable=False, index=True
    )
    inventario_id = db.Column(db.String(36))
    marca = db.Column(db.String(100), nullable=False)
    amperaje = db.Column(db.String(50), nullable=False)
    cantidad = db.Column(db.Integer, nullable=False)
    precio_venta = db.Column(db.Numeric(12, 2), default=0)
    costo = db.Column(db.Numeric(12, 2), default=0)
    subtotal = db.Column(db.Numeric(12, 2), default=0)
    ganancia_item = db.Column(db.Numeric(12, 2), default=0)

    def to_dict(self):
        return {
            'id': self.id,
            'venta_id': self.venta_id,
            'inventario_id': self.inventario_id,
            'marca': self.marca,
            'amperaje': self.amperaje,
            'cantidad': self.cantidad,
            'precio_venta': money(self.precio_venta),
            'costo': money(self.costo),
            'subtotal': money(self.subtotal),
            'ganancia_item': money(self.ganancia_item),
        }


class TiendaGasto(db.Model):
    """Gastos operativos de una tienda"""
    __tablename__ = 'tienda_gastos'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    tienda_id = db.Column(
        db.String(36), db.ForeignKey('tiendas.id', ondelete='CASCADE'), nullable=False, index=True
    )
    categoria = db.Column(db.String(100), nullable=False)
    descripcion = db.Column(db.Text)
    monto = db.Column(db.Numeric(12, 2), nullable=False)
    fecha = db.Column(db.Date, default=date.today, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'tienda_id': self.tienda_id,
            'categoria': self.categoria,
            'descripcion': self.descripcion,
            'monto': money(self.monto),
            'fecha': iso(self.fecha),
            'created_at': iso(self.created_at),
        }


class DeudaConfig(db.Model):
    __tablename__ = 'deuda_config'

    id = db.Column(db.Integer, primary_key=True)
    saldo_inicial = db.Column(db.Numeric(14, 2), default=0)


class DeudaOperacion(db.Model):
    """Movimientos de la deuda con el proveedor"""
    __tablename__ = 'deuda_operaciones'

    TIPOS = ('deposito', 'camion', 'compra')

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    tipo = db.Column(db.String(20), nullable=False, index=True)
    detalle = db.Column(db.Text, default='')
    entidad_financiera = db.Column(db.String(100), default='')
    metodo_pago = db.Column(db.String(50), default='')
    kilos = db.Column(db.Numeric(12, 2), default=0)
    precio_unitario = db.Column(db.Numeric(12, 2), default=0)
    importe = db.Column(db.Numeric(14, 2), default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'tipo': self.tipo,
            'detalle': self.detalle or '',
            'entidad_financiera': self.entidad_financiera or '',
            'metodo_pago': self.metodo_pago or '',
            'kilos': money(self.kilos),
            'precio_unitario': money(self.precio_unitario),
            'importe': money(self.importe),
            'created_at': iso(self.created_at),
        }


class DineroOperacion(db.Model):
    """Ingresos de tiendas y salidas de efectivo"""
    __tablename__ = 'dinero_operaciones'

    TIPOS = ('ingreso_tienda', 'salida_efectivo')

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    tipo = db.Column(db.String(20), nullable=False, index=True)
    detalle = db.Column(db.Text, default='')
    tienda_id = db.Column(
        db.String(36), db.ForeignKey('tiendas.id', ondelete='SET NULL'), nullable=True
    )
    tienda_nombre = db.Column(db.String(150), default='')
    importe = db.Column(db.Numeric(14, 2), default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'tipo': self.tipo,
            'detalle': self.detalle or '',
            'tienda_id': self.tienda_id,
            'tienda_nombre': self.tienda_nombre or '',
            'importe': money(self.importe),
            'created_at': iso(self.created_at),
        }
