import re

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.database import ROLES, Usuario
from routes.utils import admin_required, db_error, error, json_body

users_bp = Blueprint('users', __name__, url_prefix='/api/users')

USERNAME_RE = re.compile(r'^[a-zA-Z0-9_]{3,50}$')
PERMISOS_VALIDOS = {'inventario', 'tiendas', 'cotizaciones', 'estadisticas'}


def validar_username(username):
    if not USERNAME_RE.match(username):
        return 'El usuario debe tener entre 3 y 50 caracteres: letras, números o guion bajo'
    return None


def limpiar_permisos(permisos):
    if not isinstance(permisos, dict):
        raise ValueError('Permisos inválidos')
    return {clave: bool(valor) for clave, valor in permisos.items() if clave in PERMISOS_VALIDOS}


@users_bp.get('')
@login_required
@admin_required
def listar():
    usuarios = Usuario.query.order_by(Usuario.created_at.desc()).all()
    return jsonify({'users': [u.to_dict() for u in usuarios]})


@users_bp.post('')
@login_required
@admin_required
def crear():
    data = json_body()
    username = (data.get('username') or '').strip()
    password = data.get('password') or ''
    full_name = (data.get('fullName') or '').strip()
    role = (data.get('role') or '').strip()

    if not username or not password or not full_name or not role:
        return error('Todos los campos son requeridos')
    if role not in ROLES:
        return error('Rol inválido')
    mensaje = validar_username(username)
    if mensaje:
        return error(mensaje)
    if len(password) < 6:
        return error('La contraseña debe tener al menos 6 caracteres')
    if Usuario.query.filter_by(username=username).first():
        return error('El nombre de usuario ya está en uso')

    usuario = Usuario(username=username, full_name=full_name, role=role, is_active=True)
    usuario.set_password(password)
    try:
        db.session.add(usuario)
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al crear el usuario')

    current_app.logger.info('Usuario %s creado por %s', username, current_user.username)
    return jsonify({'success': True, 'user': usuario.to_dict()})


@users_bp.patch('')
@login_required
@admin_required
def actualizar():
    data = json_body()
    user_id = data.get('id')
    if not user_id:
        return error('ID de usuario requerido')

    usuario = db.session.get(Usuario, user_id)
    if not usuario:
        return error('Usuario no encontrado', 404)

    username = (data.get('username') or '').strip()
    if username and username != usuario.username:
        mensaje = validar_username(username)
        if mensaje:
            return error(mensaje)
        existe = Usuario.query.filter(Usuario.username == username, Usuario.id != usuario.id).first()
        if existe:
            return error('El nombre de usuario ya está en uso')
        usuario.username = username

    if data.get('fullName'):
        usuario.full_name = data['fullName'].strip()
    if data.get('role'):
        if data['role'] not in ROLES:
            return error('Rol inválido')
        usuario.role = data['role']
    if data.get('isActive') is not None:
        usuario.is_active = bool(data['isActive'])
    if data.get('newPassword'):
        if len(data['newPassword']) < 6:
            return error('La contraseña debe tener al menos 6 caracteres')
        usuario.set_password(data['newPassword'])
    if data.get('permissions') is not None:
        try:
            usuario.permissions = limpiar_permisos(data['permissions'])
        except ValueError as exc:
            return error(str(exc))

    try:
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al actualizar el usuario')

    return jsonify({'success': True, 'user': usuario.to_dict()})


@users_bp.delete('')
@login_required
@admin_required
def eliminar():
    user_id = request.args.get('id')
    if not user_id:
        return error('ID de usuario requerido')

    usuario = db.session.get(Usuario, user_id)
    if not usuario:
        return error('Usuario no encontrado', 404)
    if usuario.id == current_user.id:
        return error('No puedes eliminar tu propia cuenta')

    try:
        db.session.delete(usuario)
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al eliminar el usuario')

    return jsonify({'success': True})
