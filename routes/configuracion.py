from flask import Blueprint, jsonify, request
from flask_login import login_required
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.database import EmpresaConfig, PdfConfig
from routes.utils import db_error, error, json_body, parse_int, texto
from services.empresa import get_empresa_config, get_pdf_config

configuracion_bp = Blueprint('configuracion', __name__, url_prefix='/api')


@configuracion_bp.get('/empresa-config')
@login_required
def empresa_config():
    empresa = EmpresaConfig.query.order_by(EmpresaConfig.id).first()
    if empresa is None:
        return jsonify({'config': {'id': None, **EmpresaConfig.DEFAULTS}})
    return jsonify({'config': empresa.to_dict()})


@configuracion_bp.post('/empresa-config')
@login_required
def guardar_empresa_config():
    """Crear o actualizar la configuración de la empresa"""
    data = json_body()
    empresa = get_empresa_config()

    for campo in EmpresaConfig.DEFAULTS:
        if campo not in data:
            continue
        if campo == 'siguiente_numero':
            try:
                numero = parse_int(data[campo], 1)
            except ValueError as exc:
                return error(str(exc))
            if numero < 1:
                return error('El siguiente número debe ser mayor a 0')
            empresa.siguiente_numero = numero
        elif campo == 'logo':
            empresa.logo = data[campo] or None
        else:
            setattr(empresa, campo, texto(data[campo]))

    if not empresa.nombre:
        return error('El nombre de la empresa es requerido')

    try:
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al guardar configuración')

    return jsonify({'config': empresa.to_dict(), 'message': 'Configuración guardada'})


@configuracion_bp.get('/pdf-config')
@login_required
def pdf_config():
    modulo = request.args.get('modulo')
    if not modulo:
        return error('Módulo requerido')
    return jsonify({'config': get_pdf_config(modulo)})


@configuracion_bp.post('/pdf-config')
@login_required
def guardar_pdf_config():
    data = json_body()
    modulo = texto(data.get('modulo'))
    config = data.get('config')
    if not modulo or not isinstance(config, dict) or not config:
        return error('Módulo y config requeridos')

    fila = PdfConfig.query.filter_by(modulo=modulo).first()
    if fila is None:
        fila = PdfConfig(modulo=modulo)
        db.session.add(fila)
    fila.config = config

    try:
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al guardar configuración')

    return jsonify({'success': True})
