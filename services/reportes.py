"""
Resúmenes financieros y rankings de ventas.

Las cotizaciones convertidas cuentan como ventas directas; las ventas de
tienda se leen de tienda_ventas y sus items.
"""
import calendar
from collections import OrderedDict
from datetime import date, datetime, time, timedelta
from decimal import Decimal

from sqlalchemy import func

from models import db
from models.database import Cotizacion, Inventario, Tienda, TiendaGasto, TiendaInventario, TiendaVenta, TiendaVentaItem

PERIODOS = ('semana', 'mes', 'trimestre', 'anio', 'todo')
TOP_PRODUCTOS = 50


def restar_meses(fecha, meses):
    mes = fecha.month - meses
    anio = fecha.year
    while mes < 1:
        mes += 12
        anio -= 1
    dia = min(fecha.day, calendar.monthrange(anio, mes)[1])
    return fecha.replace(year=anio, month=mes, day=dia)


def rango_periodo(periodo, hoy=None):
    """(desde, hasta) para un periodo con nombre; 'todo' no tiene límites"""
    hoy = hoy or date.today()
    if periodo == 'todo':
        return None, None
    if periodo == 'semana':
        return hoy - timedelta(days=7), hoy
    if periodo == 'trimestre':
        return restar_meses(hoy, 3), hoy
    if periodo == 'anio':
        return restar_meses(hoy, 12), hoy
    return restar_meses(hoy, 1), hoy


def num(valor):
    return Decimal(str(valor)) if valor not in (None, '') else Decimal('0')


def ganancia_cotizacion(cotizacion):
    """Σ (precio de venta − costo) × cantidad de los productos de la cotización"""
    ganancia = Decimal('0')
    for producto in cotizacion.productos or []:
        precio = producto.get('precio_venta', producto.get('precio'))
        ganancia += (num(precio) - num(producto.get('costo'))) * int(producto.get('cantidad') or 0)
    return ganancia


def cotizaciones_convertidas(desde=None, hasta=None, campo='fecha'):
    query = Cotizacion.query.filter(Cotizacion.estado == 'convertida')
    if campo == 'fecha':
        if desde:
            query = query.filter(Cotizacion.fecha >= desde)
        if hasta:
            query = query.filter(Cotizacion.fecha <= hasta)
    else:
        if desde:
            query = query.filter(Cotizacion.created_at >= datetime.combine(desde, time.min))
        if hasta:
            query = query.filter(Cotizacion.created_at <= datetime.combine(hasta, time.max))
    return query.all()


def por_fecha(query, columna, desde, hasta):
    if desde:
        query = query.filter(columna >= desde)
    if hasta:
        query = query.filter(columna <= hasta)
    return query


def resumen_financiero(desde=None, hasta=None, tienda_id=None):
    """Ventas directas, ventas y gastos por tienda y el balance general"""
    cotizaciones = cotizaciones_convertidas(desde, hasta)
    cot_total = sum((num(c.total) for c in cotizaciones), Decimal('0'))
    cot_ganancia = sum((ganancia_cotizacion(c) for c in cotizaciones), Decimal('0'))

    ventas_q = por_fecha(TiendaVenta.query, TiendaVenta.fecha, desde, hasta)
    gastos_q = por_fecha(TiendaGasto.query, TiendaGasto.fecha, desde, hasta)
    if tienda_id:
        ventas_q = ventas_q.filter(TiendaVenta.tienda_id == tienda_id)
        gastos_q = gastos_q.filter(TiendaGasto.tienda_id == tienda_id)

    ventas = {
        fila.tienda_id: fila
        for fila in ventas_q.with_entities(
            TiendaVenta.tienda_id,
            func.count(TiendaVenta.id).label('cantidad'),
            func.coalesce(func.sum(TiendaVenta.total_venta), 0).label('total'),
            func.coalesce(func.sum(TiendaVenta.total_costo), 0).label('costo'),
            func.coalesce(func.sum(TiendaVenta.ganancia), 0).label('ganancia'),
        ).group_by(TiendaVenta.tienda_id)
    }
    gastos = {}
    for tid, categoria, monto in gastos_q.with_entities(
        TiendaGasto.tienda_id, TiendaGasto.categoria, func.coalesce(func.sum(TiendaGasto.monto), 0)
    ).group_by(TiendaGasto.tienda_id, TiendaGasto.categoria):
        gastos.setdefault(tid, {})[categoria] = num(monto)

    detalle = []
    for tienda in Tienda.query.order_by(Tienda.nombre).all():
        venta = ventas.get(tienda.id)
        por_categoria = gastos.get(tienda.id, {})
        ganancia = num(venta.ganancia) if venta else Decimal('0')
        total_gastos = sum(por_categoria.values(), Decimal('0'))
        detalle.append({
            'id': tienda.id,
            'nombre': tienda.nombre,
            'tipo': tienda.tipo,
            'ventas': {
                'cantidad': venta.cantidad if venta else 0,
                'total': float(num(venta.total)) if venta else 0.0,
                'costo': float(num(venta.costo)) if venta else 0.0,
                'ganancia': float(ganancia),
            },
            'gastos': {
                'total': float(total_gastos),
                'porCategoria': {cat: float(m) for cat, m in por_categoria.items()},
            },
            'balanceNeto': float(ganancia - total_gastos),
        })

    tiendas_ventas = sum((num(v.total) for v in ventas.values()), Decimal('0'))
    tiendas_ganancia = sum((num(v.ganancia) for v in ventas.values()), Decimal('0'))
    tiendas_gastos = sum((sum(c.values(), Decimal('0')) for c in gastos.values()), Decimal('0'))

    return {
        'cotizaciones': {
            'cantidad': len(cotizaciones),
            'total': float(cot_total),
            'ganancia': float(cot_ganancia),
        },
        'tiendas': {
            'cantidad': len(detalle),
            'totalVentas': float(tiendas_ventas),
            'totalGanancia': float(tiendas_ganancia),
            'totalGastos': float(tiendas_gastos),
            'balanceNeto': float(tiendas_ganancia - tiendas_gastos),
        },
        'general': {
            'ingresosTotales': float(cot_total + tiendas_ventas),
            'gananciaBruta': float(cot_ganancia + tiendas_ganancia),
            'gastosTotales': float(tiendas_gastos),
            'gananciaNeta': float(cot_ganancia + tiendas_ganancia - tiendas_gastos),
        },
        'tiendasDetalle': detalle,
    }


def ranking_marcas(productos):
    marcas = OrderedDict()
    for prod in productos:
        marca = marcas.setdefault(prod['marca'], {
            'marca': prod['marca'],
            'cantidad_vendida': 0,
            'valor_venta': 0.0,
            'productos_distintos': 0,
        })
        marca['cantidad_vendida'] += prod['cantidad_vendida']
        marca['valor_venta'] += prod['valor_venta']
        marca['productos_distintos'] += 1
    return sorted(marcas.values(), key=lambda m: m['cantidad_vendida'], reverse=True)


def acumular(productos, marca, amperaje, cantidad, valor):
    prod = productos.setdefault((marca, amperaje), {
        'marca': marca,
        'amperaje': amperaje,
        'cantidad_vendida': 0,
        'valor_venta': Decimal('0'),
        'ventas_count': 0,
    })
    prod['cantidad_vendida'] += cantidad
    prod['valor_venta'] += valor
    prod['ventas_count'] += 1


def estadisticas_ventas(desde=None, hasta=None):
    """Ranking de productos y marcas vendidos por cotización"""
    cotizaciones = cotizaciones_convertidas(desde, hasta, campo='created_at')
    productos = OrderedDict()
    for cotizacion in cotizaciones:
        for prod in cotizacion.productos or []:
            acumular(
                productos, prod.get('marca'), prod.get('amperaje'),
                int(prod.get('cantidad') or 0), num(prod.get('total')),
            )

    centrales = {
        (i.marca.lower(), i.amperaje.lower()): i for i in Inventario.query.all()
    }
    lista = []
    for prod in productos.values():
        central = centrales.get(((prod['marca'] or '').lower(), (prod['amperaje'] or '').lower()))
        costo_unitario = num(central.costo) if central else Decimal('0')
        costo_total = costo_unitario * prod['cantidad_vendida']
        lista.append({
            **prod,
            'valor_venta': float(prod['valor_venta']),
            'costo_total': float(costo_total),
            'ganancia': float(prod['valor_venta'] - costo_total),
            'stock_actual': central.cantidad if central else 0,
        })
    lista.sort(key=lambda p: p['cantidad_vendida'], reverse=True)

    return {
        'tipo': 'ventas',
        'periodo': {'desde': desde and desde.isoformat(), 'hasta': hasta and hasta.isoformat()},
        'totales': {
            'total_ventas': len(cotizaciones),
            'total_unidades': sum(p['cantidad_vendida'] for p in lista),
            'total_costo': sum(p['costo_total'] for p in lista),
            'total_valor': sum(p['valor_venta'] for p in lista),
            'total_ganancia': sum(p['ganancia'] for p in lista),
        },
        'productos': lista[:TOP_PRODUCTOS],
        'marcas': ranking_marcas(lista),
    }


def estadisticas_tiendas(desde=None, hasta=None):
    """Ranking de productos vendidos en tiendas y ranking de tiendas"""
    ventas = por_fecha(TiendaVenta.query, TiendaVenta.fecha, desde, hasta).all()
    ids = [v.id for v in ventas]
    items = TiendaVentaItem.query.filter(TiendaVentaItem.venta_id.in_(ids)).all() if ids else []

    productos = OrderedDict()
    for item in items:
        acumular(productos, item.marca, item.amperaje, item.cantidad, num(item.subtotal))

    stock = TiendaInventario.query.all()
    stock_por_producto = {}
    for fila in stock:
        clave = (fila.marca, fila.amperaje)
        stock_por_producto[clave] = stock_por_producto.get(clave, 0) + fila.cantidad

    lista = [
        {
            **prod,
            'valor_venta': float(prod['valor_venta']),
            'stock_actual': stock_por_producto.get((prod['marca'], prod['amperaje']), 0),
        }
        for prod in productos.values()
    ]
    lista.sort(key=lambda p: p['cantidad_vendida'], reverse=True)

    ranking = []
    for tienda in Tienda.query.all():
        propias = [v for v in ventas if v.tienda_id == tienda.id]
        inventario = [i for i in stock if i.tienda_id == tienda.id]
        ranking.append({
            'id': tienda.id,
            'nombre': tienda.nombre,
            'tipo': tienda.tipo,
            'ciudad': tienda.ciudad,
            'total_ventas': len(propias),
            'total_unidades': sum(v.total_unidades or 0 for v in propias),
            'total_valor': float(sum((num(v.total_venta) for v in propias), Decimal('0'))),
            'total_ganancia': float(sum((num(v.ganancia) for v in propias), Decimal('0'))),
            'stock_actual': sum(i.cantidad for i in inventario),
            'valor_inventario': float(
                sum((i.cantidad * num(i.precio_venta) for i in inventario), Decimal('0'))
            ),
        })
    ranking.sort(key=lambda t: t['total_unidades'], reverse=True)

    return {
        'tipo': 'tiendas',
        'periodo': {'desde': desde and desde.isoformat(), 'hasta': hasta and hasta.isoformat()},
        'totales': {
            'total_ventas': len(ventas),
            'total_unidades': sum(v.total_unidades or 0 for v in ventas),
            'total_valor': float(sum((num(v.total_venta) for v in ventas), Decimal('0'))),
            'total_costo': float(sum((num(v.total_costo) for v in ventas), Decimal('0'))),
            'total_ganancia': float(sum((num(v.ganancia) for v in ventas), Decimal('0'))),
            'tiendas_activas': sum(1 for t in ranking if t['total_ventas'] > 0),
        },
        'productos': lista[:TOP_PRODUCTOS],
        'marcas': ranking_marcas(lista),
        'ranking': ranking,
    }


def total_ventas_directas():
    """(Σ total, cantidad) de las cotizaciones convertidas"""
    total, cantidad = db.session.query(
        func.coalesce(func.sum(Cotizacion.total), 0), func.count(Cotizacion.id)
    ).filter(Cotizacion.estado == 'convertida').one()
    return num(total), cantidad
