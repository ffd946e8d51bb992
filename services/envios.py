"""
Flujo de envíos del inventario central a las tiendas.

pendiente -> precios_asignados -> completado. Un envío pendiente o con
precios puede cancelarse y su stock vuelve al inventario central.
"""
from datetime import datetime

from flask import current_app

from models import db
from models.database import ESTADOS_ENVIO, EnvioItem, TiendaEnvio
from services.stock import sumar_a_tienda, to_decimal, validar_stock_central


class EnvioError(ValueError):
    """Operación no permitida sobre un envío"""


def crear_envio(tienda_id, productos, created_by=None):
    """Crear un envío pendiente y descontar el stock central"""
    centrales = validar_stock_central(productos)

    envio = TiendaEnvio(
        tienda_id=tienda_id,
        estado='pendiente',
        total_productos=len(productos),
        total_unidades=sum(p['cantidad'] for p in productos),
        created_by=created_by,
    )
    for linea in productos:
        central = centrales[linea['inventoryId']]
        envio.items.append(
            EnvioItem(
                inventory_id=central.id,
                marca=linea.get('marca') or central.marca,
                amperaje=linea.get('amperaje') or central.amperaje,
                cantidad=linea['cantidad'],
                costo_original=to_decimal(linea.get('costo'), central.costo),
                precio_venta_original=to_decimal(linea.get('precio_venta'), central.precio_venta),
                precio_tienda=None,
            )
        )
        central.cantidad -= linea['cantidad']

    db.session.add(envio)
    current_app.logger.info(
        'Envío a tienda %s: %s productos, %s unidades',
        tienda_id, envio.total_productos, envio.total_unidades,
    )
    return envio


def promover_si_completo(envio):
    """Pasar a precios_asignados cuando todos los items tienen precio"""
    if envio.estado == 'pendiente' and envio.items and envio.todos_con_precio():
        envio.estado = 'precios_asignados'
    return envio.todos_con_precio()


def asignar_precios(envio, precios):
    """
    Asignar precio_tienda a los items del envío.

    `precios` es un mapa item_id -> Decimal. Los ids de otros envíos se
    ignoran. Devuelve cuántos items se actualizaron.
    """
    if envio.estado == 'completado':
        raise EnvioError('Este envío ya fue completado')

    actualizados = 0
    for item in envio.items:
        if item.id in precios:
            item.precio_tienda = precios[item.id]
            actualizados += 1
    promover_si_completo(envio)
    return actualizados


def confirmar_envio(envio):
    """Mover los items del envío al inventario de la tienda"""
    if envio.estado == 'completado':
        raise EnvioError('Este envío ya fue completado')

    sin_precio = [item for item in envio.items if item.precio_tienda is None]
    if sin_precio:
        raise EnvioError(
            f"Hay {len(sin_precio)} productos sin precio asignado. Importa los precios primero."
        )

    for item in envio.items:
        sumar_a_tienda(
            envio.tienda_id,
            item.marca,
            item.amperaje,
            item.cantidad,
            costo=item.costo_original,
            precio_venta=item.precio_tienda,
        )

    envio.estado = 'completado'
    envio.completado_at = datetime.utcnow()
    current_app.logger.info('Envío %s completado con %s productos', envio.id, len(envio.items))
    return len(envio.items)


def cambiar_estado(envio, estado):
    if estado not in ESTADOS_ENVIO:
        raise EnvioError('Estado no válido')
    if envio.estado == 'completado':
        raise EnvioError('Este envío ya fue completado')
    if estado == 'completado':
        raise EnvioError('Usa la acción confirmar para completar el envío')
    envio.estado = estado


def cancelar_envio(envio):
    """Devolver el stock al inventario central y eliminar el envío"""
    if envio.estado == 'completado':
        raise EnvioError('No se puede eliminar un envío completado')

    devueltos = 0
    for item in envio.items:
        # El producto central pudo haberse borrado después del envío
        if item.inventory_id and item.central:
            item.central.cantidad += item.cantidad
            devueltos += 1

    cantidad_items = len(envio.items)
    db.session.delete(envio)
    current_app.logger.info('Envío %s cancelado, %s productos devueltos', envio.id, devueltos)
    return cantidad_items
