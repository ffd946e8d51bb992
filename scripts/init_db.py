#!/usr/bin/env python3
"""
Script para inicializar la base de datos
Crea las tablas, un usuario administrador, la configuración de la empresa,
la casa matriz y algunas baterías de ejemplo
"""

import sys
import os

# Agregar el directorio raíz al path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from sqlalchemy.exc import SQLAlchemyError

from app import create_app
from models import db
from models.database import EmpresaConfig, Inventario, Tienda, Usuario

ADMIN_PASSWORD = os.environ.get('ADMIN_PASSWORD', 'nicmat2024')

BATERIAS_EJEMPLO = [
    ('Toyo', '45 Amp', 12, 380, 480),
    ('Toyo', '65 Amp', 8, 520, 650),
    ('Bosch', '60 Amp', 10, 610, 760),
    ('Bosch', '90 Amp', 4, 890, 1100),
    ('Willard', '75 Amp', 6, 700, 870),
]


def init_database():
    """Inicializar base de datos con datos de ejemplo"""

    app = create_app(os.environ.get('FLASK_ENV', 'development'))

    with app.app_context():
        print("🔧 Creando tablas en la base de datos...")
        db.create_all()
        print("✅ Tablas creadas exitosamente")

        admin = Usuario.query.filter_by(username='admin').first()
        if not admin:
            print("\n👤 Creando usuario administrador...")
            admin = Usuario(
                username='admin',
                full_name='Administrador NICMAT',
                role='admin',
                is_active=True,
            )
            admin.set_password(ADMIN_PASSWORD)
            db.session.add(admin)
            db.session.commit()

            print("✅ Usuario administrador creado")
            print("\n📋 Credenciales de acceso:")
            print("   Usuario: admin")
            print(f"   Contraseña: {ADMIN_PASSWORD}")
        else:
            print("\n⚠️  El usuario administrador ya existe")

        if EmpresaConfig.query.count() == 0:
            print("\n🏢 Guardando configuración de la empresa...")
            db.session.add(EmpresaConfig(**EmpresaConfig.DEFAULTS))
            db.session.commit()
            print("✅ Configuración creada")

        if Tienda.query.filter_by(tipo='casa_matriz').count() == 0:
            print("\n🏬 Creando casa matriz...")
            db.session.add(Tienda(nombre='Casa Matriz', tipo='casa_matriz', ciudad='Santa Cruz'))
            db.session.commit()
            print("✅ Casa matriz creada")

        if Inventario.query.count() == 0:
            print("\n🔋 Creando baterías de ejemplo...")
            for marca, amperaje, cantidad, costo, precio in BATERIAS_EJEMPLO:
                db.session.add(Inventario(
                    marca=marca,
                    amperaje=amperaje,
                    cantidad=cantidad,
                    costo=costo,
                    precio_venta=precio,
                ))
            db.session.commit()
            print(f"✅ {len(BATERIAS_EJEMPLO)} productos creados")

        print("\n" + "=" * 50)
        print("🎉 Base de datos inicializada correctamente")
        print("=" * 50)
        print("\n💡 Puedes iniciar la aplicación con:")
        print("   python app.py")
        print("\n")


if __name__ == '__main__':
    try:
        init_database()
    except SQLAlchemyError as e:
        print(f"\n❌ Error al inicializar la base de datos: {e}")
        sys.exit(1)
