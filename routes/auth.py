from datetime import datetime

from flask import Blueprint, current_app, jsonify, session
from flask_login import current_user, login_required, login_user, logout_user
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.database import UserPresence, Usuario
from routes.utils import db_error, error, json_body

# Crear blueprint de autenticación
auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


def marcar_presencia(usuario, en_linea):
    presencia = usuario.presence
    if presencia is None:
        presencia = UserPresence(user_id=usuario.id)
        db.session.add(presencia)
    presencia.is_online = en_linea
    presencia.last_seen = datetime.utcnow()
    return presencia


@auth_bp.post('/login')
def login():
    """Iniciar sesión"""
    data = json_body()
    username = (data.get('username') or '').strip()
    password = data.get('password') or ''
    remember = bool(data.get('remember', True))

    # Validar campos
    if not username or not password:
        return error('Usuario y contraseña son requeridos')

    usuario = Usuario.query.filter_by(username=username).first()

    # Mismo mensaje para usuario inexistente, inactivo o contraseña errónea
    if not usuario or not usuario.is_active or not usuario.check_password(password):
        current_app.logger.warning('Intento de login fallido para %s', username)
        return error('Usuario o contraseña incorrectos', 401)

    login_user(usuario, remember=remember)
    try:
        marcar_presencia(usuario, True)
        usuario.actualizar_ultimo_acceso()
    except SQLAlchemyError:
        return db_error('Error al iniciar sesión')

    return jsonify({'success': True, 'user': usuario.to_dict()})


@auth_bp.post('/logout')
@login_required
def logout():
    """Cerrar sesión"""
    try:
        marcar_presencia(current_user, False)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning('No se pudo marcar offline a %s', current_user.username)
    logout_user()
    session.clear()
    return jsonify({'success': True})


@auth_bp.get('/me')
def me():
    if not current_user.is_authenticated:
        return jsonify({'user': None})
    return jsonify({'user': current_user.to_dict()})


@auth_bp.post('/change-password')
@login_required
def change_password():
    data = json_body()
    actual = data.get('currentPassword') or ''
    nueva = data.get('newPassword') or ''

    if not actual or not nueva:
        return error('Contraseña actual y nueva son requeridas')
    if not current_user.check_password(actual):
        return error('La contraseña actual es incorrecta')
    if actual == nueva:
        return error('La nueva contraseña debe ser diferente a la actual')
    if len(nueva) < 6:
        return error('La nueva contraseña debe tener al menos 6 caracteres')

    try:
        current_user.set_password(nueva)
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al cambiar la contraseña')

    return jsonify({'success': True, 'message': 'Contraseña actualizada correctamente'})


@auth_bp.post('/presence')
def heartbeat():
    """Latido de presencia; expulsa a los usuarios desactivados"""
    # Un usuario desactivado sigue cargándose desde la sesión pero deja de
    # estar autenticado, por eso no se usa login_required aquí
    usuario = current_user._get_current_object()
    if not isinstance(usuario, Usuario):
        return error('No autorizado', 401)
    try:
        if not usuario.is_active:
            if usuario.presence:
                db.session.delete(usuario.presence)
            db.session.commit()
            logout_user()
            session.clear()
            return jsonify({'error': 'Usuario desactivado', 'forceLogout': True}), 403

        marcar_presencia(usuario, True)
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al actualizar presencia')

    return jsonify({'success': True})


@auth_bp.delete('/presence')
@login_required
def offline():
    try:
        marcar_presencia(current_user, False)
        db.session.commit()
    except SQLAlchemyError:
        return db_error('Error al actualizar presencia')
    return jsonify({'success': True})
