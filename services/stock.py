"""
Movimientos de stock entre el inventario central y las tiendas.

Las funciones de este módulo solo modifican la sesión; la ruta que las llama
hace un único commit, de modo que un movimiento queda completo o no queda.
"""
from collections import OrderedDict
from decimal import Decimal, InvalidOperation

from flask import current_app
from sqlalchemy import func

from models import db
from models.database import Inventario, TiendaInventario, TiendaVenta, TiendaVentaItem


class StockError(ValueError):
    """Stock insuficiente o producto inexistente"""


def to_decimal(value, default=Decimal('0')):
    if value is None or value == '':
        return default
    try:
        numero = Decimal(str(value))
    except InvalidOperation:
        raise StockError(f"Número inválido: {value}")
    if not numero.is_finite():
        raise StockError(f"Número inválido: {value}")
    return numero


def mismo_producto(model, marca, amperaje):
    """Filtro por (marca, amperaje) sin distinguir mayúsculas"""
    return (
        func.lower(model.marca) == (marca or '').strip().lower(),
        func.lower(model.amperaje) == (amperaje or '').strip().lower(),
    )


def buscar_central(marca, amperaje):
    return Inventario.query.filter(*mismo_producto(Inventario, marca, amperaje)).first()


def buscar_en_tienda(tienda_id, marca, amperaje):
    return TiendaInventario.query.filter(
        TiendaInventario.tienda_id == tienda_id,
        *mismo_producto(TiendaInventario, marca, amperaje)
    ).first()


def sumar_a_tienda(tienda_id, marca, amperaje, cantidad, costo=None, precio_venta=None):
    """Sumar unidades al inventario de una tienda, creando la fila si no existe"""
    item = buscar_en_tienda(tienda_id, marca, amperaje)
    if item:
        item.cantidad += cantidad
        if costo is not None:
            item.costo = costo
        if precio_venta is not None:
            item.precio_venta = precio_venta
        return item

    item = TiendaInventario(
        tienda_id=tienda_id,
        marca=marca.strip(),
        amperaje=amperaje.strip(),
        cantidad=cantidad,
        costo=costo if costo is not None else Decimal('0'),
        precio_venta=precio_venta if precio_venta is not None else Decimal('0'),
    )
    db.session.add(item)
    return item


def devolver_a_central(marca, amperaje, cantidad, costo=None, precio_venta=None):
    """Devolver unidades al inventario central, creando el producto si fue eliminado"""
    producto = buscar_central(marca, amperaje)
    if producto:
        producto.cantidad += cantidad
        return producto

    producto = Inventario(
        marca=marca.strip(),
        amperaje=amperaje.strip(),
        cantidad=cantidad,
        costo=costo or Decimal('0'),
        precio_venta=precio_venta or Decimal('0'),
    )
    db.session.add(producto)
    return producto


def cargar_centrales(productos, clave='inventoryId'):
    """Mapa id -> Inventario para las líneas pedidas"""
    ids = {p.get(clave) for p in productos if p.get(clave)}
    if not ids:
        return {}
    return {i.id: i for i in Inventario.query.filter(Inventario.id.in_(ids)).all()}


def validar_stock_central(productos, clave='inventoryId'):
    """
    Verificar que el inventario central cubre todas las líneas.

    Las líneas repetidas del mismo producto se acumulan. Devuelve el mapa de
    productos centrales o lanza StockError con todos los problemas juntos.
    """
    centrales = cargar_centrales(productos, clave)
    solicitados = OrderedDict()
    for linea in productos:
        solicitados.setdefault(linea.get(clave), []).append(linea)

    errores = []
    for inventory_id, lineas in solicitados.items():
        primera = lineas[0]
        nombre = f"{primera.get('marca', '')} {primera.get('amperaje', '')}".strip()
        stock = centrales.get(inventory_id)
        total = sum(linea['cantidad'] for linea in lineas)
        if not stock:
            errores.append(f"Producto {nombre} no encontrado")
        elif stock.cantidad < total:
            errores.append(
                f"{nombre}: stock insuficiente (disponible: {stock.cantidad}, solicitado: {total})"
            )

    if errores:
        raise StockError('. '.join(errores))
    return centrales


def transferir_a_tienda(tienda_id, productos):
    """
    Transferencia directa del central a la tienda sin pasar por un envío.

    Las líneas sin stock suficiente se reportan y no detienen al resto.
    """
    centrales = cargar_centrales(productos)
    exitosos = 0
    errores = []

    for linea in productos:
        central = centrales.get(linea.get('inventoryId'))
        cantidad = linea['cantidad']
        if not central or central.cantidad < cantidad:
            errores.append(f"{linea.get('marca', '')} {linea.get('amperaje', '')}: Stock insuficiente")
            continue

        central.cantidad -= cantidad
        costo = to_decimal(linea.get('costo'), None) or None
        precio = to_decimal(linea.get('precio_venta'), None) or None
        if not buscar_en_tienda(tienda_id, central.marca, central.amperaje):
            costo = costo or central.costo
            precio = precio or central.precio_venta
        sumar_a_tienda(tienda_id, central.marca, central.amperaje, cantidad, costo, precio)
        exitosos += 1

    current_app.logger.info(
        'Transferencia a tienda %s: %s exitosos, %s errores', tienda_id, exitosos, len(errores)
    )
    return exitosos, errores


def devolver_tienda_completa(tienda_id):
    """Vaciar una tienda devolviendo todo su stock al inventario central"""
    items = TiendaInventario.query.filter_by(tienda_id=tienda_id).all()
    for item in items:
        devolver_a_central(item.marca, item.amperaje, item.cantidad, item.costo, item.precio_venta)
        db.session.delete(item)
    return len(items)


def registrar_venta(tienda_id, productos, notas=None, fecha=None):
    """Crear una venta de tienda y descontar su stock"""
    ids = {p.get('inventarioId') for p in productos}
    existentes = {
        i.id: i
        for i in TiendaInventario.query.filter(
            TiendaInventario.tienda_id == tienda_id, TiendaInventario.id.in_(ids)
        ).all()
    }

    pedidos = {}
    for linea in productos:
        pedidos[linea.get('inventarioId')] = pedidos.get(linea.get('inventarioId'), 0) + linea['cantidad']
    for linea in productos:
        item = existentes.get(linea.get('inventarioId'))
        if not item or item.cantidad < pedidos[linea.get('inventarioId')]:
            raise StockError(f"Stock insuficiente para {linea.get('marca', '')} {linea.get('amperaje', '')}")

    venta = TiendaVenta(tienda_id=tienda_id, notas=notas)
    if fecha:
        venta.fecha = fecha

    total_venta = Decimal('0')
    total_costo = Decimal('0')
    total_unidades = 0
    for linea in productos:
        item = existentes[linea['inventarioId']]
        cantidad = linea['cantidad']
        precio = to_decimal(linea.get('precio_venta'), item.precio_venta)
        costo = to_decimal(linea.get('costo'), item.costo)
        subtotal = precio * cantidad
        costo_linea = costo * cantidad

        venta.items.append(
            TiendaVentaItem(
                inventario_id=item.id,
                marca=item.marca,
                amperaje=item.amperaje,
                cantidad=cantidad,
                precio_venta=precio,
                costo=costo,
                subtotal=subtotal,
                ganancia_item=subtotal - costo_linea,
            )
        )
        total_venta += subtotal
        total_costo += costo_linea
        total_unidades += cantidad

        item.cantidad -= cantidad
        if item.cantidad <= 0:
            db.session.delete(item)

    venta.total_venta = total_venta
    venta.total_costo = total_costo
    venta.total_unidades = total_unidades
    venta.ganancia = total_venta - total_costo
    db.session.add(venta)
    return venta


def revertir_venta(venta):
    """Devolver a la tienda las unidades vendidas y eliminar la venta"""
    for item in venta.items:
        if buscar_en_tienda(venta.tienda_id, item.marca, item.amperaje):
            sumar_a_tienda(venta.tienda_id, item.marca, item.amperaje, item.cantidad)
        else:
            # Fila recreada con el costo y precio de la venta
            sumar_a_tienda(venta.tienda_id, item.marca, item.amperaje, item.cantidad,
                           item.costo, item.precio_venta)
    db.session.delete(venta)


def descontar_cotizacion(cotizacion):
    """Descontar del inventario central las unidades de una cotización convertida"""
    pedidos = OrderedDict()
    for producto in cotizacion.productos or []:
        marca = (producto.get('marca') or '').strip()
        amperaje = (producto.get('amperaje') or '').strip()
        clave = (marca.lower(), amperaje.lower())
        nombre, cantidad = pedidos.get(clave, (f"{marca} {amperaje}", 0))
        pedidos[clave] = (nombre, cantidad + int(producto.get('cantidad') or 0))

    faltantes = []
    movimientos = []
    for (marca, amperaje), (nombre, cantidad) in pedidos.items():
        central = buscar_central(marca, amperaje)
        if not central:
            faltantes.append(f"Producto {nombre} no encontrado")
        elif central.cantidad < cantidad:
            faltantes.append(
                f"{nombre}: stock insuficiente (disponible: {central.cantidad}, solicitado: {cantidad})"
            )
        else:
            movimientos.append((central, cantidad))

    if faltantes:
        raise StockError('. '.join(faltantes))
    for central, cantidad in movimientos:
        central.cantidad -= cantidad
