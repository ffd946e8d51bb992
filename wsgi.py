"""
Punto de entrada WSGI de la API de NICMAT
Uso: gunicorn --bind 0.0.0.0:5000 --workers 2 wsgi:app

FLASK_ENV permite levantar otro entorno (por ejemplo development) con el
mismo comando; por defecto se usa la configuración de producción.
"""
import os

from app import create_app

app = create_app(os.environ.get('FLASK_ENV', 'production'))

if __name__ == '__main__':
    app.run(host=app.config['APP_HOST'], port=app.config['APP_PORT'])
