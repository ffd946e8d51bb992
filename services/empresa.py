from models import db
from models.database import EmpresaConfig, PdfConfig

PDF_CONFIG_DEFAULT = {
    'titulo': 'INVENTARIO DE BATERÍAS',
    'subtitulo': 'Listado completo de productos en stock',
    'empresa': 'NICMAT S.R.L.',
    'colorPrincipal': '#1a5f7a',
    'mostrarCosto': True,
    'mostrarPrecioVenta': True,
    'mostrarTotales': True,
    'mostrarFecha': True,
    'mostrarLogo': True,
    'itemsPorPagina': 25,
}


def get_empresa_config():
    """Configuración de la empresa; crea la fila por defecto si no existe"""
    empresa = EmpresaConfig.query.order_by(EmpresaConfig.id).first()
    if empresa:
        return empresa
    empresa = EmpresaConfig(**EmpresaConfig.DEFAULTS)
    db.session.add(empresa)
    return empresa


def reservar_numero_cotizacion():
    """Tomar el siguiente número de cotización y avanzar el contador"""
    empresa = get_empresa_config()
    numero = int(empresa.siguiente_numero or 1)
    empresa.siguiente_numero = numero + 1
    return f"{empresa.prefijo_cotizacion or 'COT'}-{numero:04d}"


def get_pdf_config(modulo):
    fila = PdfConfig.query.filter_by(modulo=modulo).first()
    if fila:
        return {**PDF_CONFIG_DEFAULT, **(fila.config or {})}
    return dict(PDF_CONFIG_DEFAULT)
