import io

import pytest
from openpyxl import Workbook, load_workbook

from models import db
from models.database import Inventario, TiendaEnvio, TiendaInventario


@pytest.fixture()
def escenario(make_tienda, make_producto, make_stock_tienda):
    tienda_id = make_tienda('Sucursal Norte')
    toyo = make_producto('Toyo', '45 Amp', cantidad=10, costo=100, precio_venta=150)
    bosch = make_producto('Bosch', '60 Amp', cantidad=5, costo=300, precio_venta=400)
    existente = make_stock_tienda(tienda_id, 'toyo', '45 amp', cantidad=2, costo=90, precio_venta=140)
    return {'tienda': tienda_id, 'toyo': toyo, 'bosch': bosch, 'existente': existente}


@pytest.fixture()
def crear_envio(auth_client, escenario):
    def _crear(toyo=4, bosch=2):
        response = auth_client.post('/api/tienda-envios', json={
            'tiendaId': escenario['tienda'],
            'productos': [
                {'inventoryId': escenario['toyo'], 'marca': 'Toyo', 'amperaje': '45 Amp', 'cantidad': toyo},
                {'inventoryId': escenario['bosch'], 'marca': 'Bosch', 'amperaje': '60 Amp', 'cantidad': bosch},
            ],
        })
        assert response.status_code == 200
        envio = response.get_json()['envio']
        items = auth_client.get(f"/api/tienda-envios?envioId={envio['id']}").get_json()['items']
        return envio, items
    return _crear


def precios(items, **por_marca):
    return [{'id': i['id'], 'precio_tienda': por_marca[i['marca'].lower()]} for i in items]


class TestCrearEnvio:
    def test_descuenta_stock_central(self, auth_client, escenario, crear_envio, leer):
        envio, items = crear_envio()

        assert envio['estado'] == 'pendiente'
        assert envio['total_productos'] == 2
        assert envio['total_unidades'] == 6
        assert [i['marca'] for i in items] == ['Bosch', 'Toyo']
        assert all(i['precio_tienda'] is None for i in items)
        assert leer(Inventario, escenario['toyo'])['cantidad'] == 6
        assert leer(Inventario, escenario['bosch'])['cantidad'] == 3

    def test_mensaje(self, auth_client, escenario):
        response = auth_client.post('/api/tienda-envios', json={
            'tiendaId': escenario['tienda'],
            'productos': [{'inventoryId': escenario['toyo'], 'cantidad': 3}],
        })
        assert response.get_json()['message'] == 'Envío creado con 1 productos (3 unidades)'

    def test_stock_insuficiente_no_crea_nada(self, auth_client, escenario, leer):
        response = auth_client.post('/api/tienda-envios', json={
            'tiendaId': escenario['tienda'],
            'productos': [
                {'inventoryId': escenario['toyo'], 'marca': 'Toyo', 'amperaje': '45 Amp', 'cantidad': 6},
                {'inventoryId': escenario['toyo'], 'marca': 'Toyo', 'amperaje': '45 Amp', 'cantidad': 6},
                {'inventoryId': 'nada', 'marca': 'Fantasma', 'amperaje': '1 Amp', 'cantidad': 1},
            ],
        })

        assert response.status_code == 400
        mensaje = response.get_json()['error']
        assert 'stock insuficiente (disponible: 10, solicitado: 12)' in mensaje
        assert 'no encontrado' in mensaje
        assert leer(Inventario, escenario['toyo'])['cantidad'] == 10
        listado = auth_client.get(f"/api/tienda-envios?tiendaId={escenario['tienda']}").get_json()
        assert listado['envios'] == []

    def test_listado_por_estado(self, auth_client, escenario, crear_envio):
        crear_envio(1, 1)
        url = f"/api/tienda-envios?tiendaId={escenario['tienda']}"
        assert len(auth_client.get(url + '&estado=_all').get_json()['envios']) == 1
        assert auth_client.get(url + '&estado=completado').get_json()['envios'] == []

    def test_envio_inexistente(self, auth_client):
        assert auth_client.get('/api/tienda-envios?envioId=nada').status_code == 404


class TestFlujoDePrecios:
    def test_flujo_completo(self, auth_client, escenario, crear_envio, leer):
        envio, items = crear_envio()

        parcial = auth_client.patch('/api/tienda-envios', json={
            'envioId': envio['id'], 'action': 'importar_precios',
            'items': [{'id': i['id'], 'precio_tienda': 180} for i in items if i['marca'] == 'Toyo'],
        }).get_json()
        assert parcial['todosConPrecio'] is False
        assert parcial['envio']['estado'] == 'pendiente'

        completo = auth_client.patch('/api/tienda-envios', json={
            'envioId': envio['id'], 'action': 'importar_precios', 'items': precios(items, toyo=180, bosch=520),
        }).get_json()
        assert completo['envio']['estado'] == 'precios_asignados'

        response = auth_client.patch('/api/tienda-envios', json={'envioId': envio['id'], 'action': 'confirmar'})
        assert response.status_code == 200
        final = leer(TiendaEnvio, envio['id'])
        assert final['estado'] == 'completado'
        assert final['completado_at'] is not None

        fila = leer(TiendaInventario, escenario['existente'])
        assert fila['cantidad'] == 6
        assert fila['precio_venta'] == 180.0
        assert fila['costo'] == 100.0

        stock = auth_client.get(f"/api/tienda-inventario?tiendaId={escenario['tienda']}&noPagination=true")
        bosch = next(i for i in stock.get_json()['items'] if i['marca'] == 'Bosch')
        assert bosch['cantidad'] == 2
        assert bosch['precio_venta'] == 520.0
        assert bosch['costo'] == 300.0

    def test_confirmar_sin_precios(self, auth_client, crear_envio):
        envio, _ = crear_envio()
        response = auth_client.patch('/api/tienda-envios', json={'envioId': envio['id'], 'action': 'confirmar'})
        assert response.status_code == 400
        assert response.get_json()['error'] == (
            'Hay 2 productos sin precio asignado. Importa los precios primero.'
        )

    def test_confirmar_dos_veces(self, auth_client, crear_envio):
        envio, items = crear_envio()
        auth_client.patch('/api/tienda-envios', json={
            'envioId': envio['id'], 'action': 'importar_precios', 'items': precios(items, toyo=180, bosch=520),
        })
        auth_client.patch('/api/tienda-envios', json={'envioId': envio['id'], 'action': 'confirmar'})

        response = auth_client.patch('/api/tienda-envios', json={'envioId': envio['id'], 'action': 'confirmar'})
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Este envío ya fue completado'

    def test_precio_invalido(self, auth_client, crear_envio):
        envio, items = crear_envio()
        response = auth_client.patch('/api/tienda-envios', json={
            'envioId': envio['id'], 'action': 'importar_precios',
            'items': [{'id': items[0]['id'], 'precio_tienda': 0}],
        })
        assert response.status_code == 400

    def test_accion_no_valida(self, auth_client, crear_envio):
        envio, _ = crear_envio()
        response = auth_client.patch('/api/tienda-envios', json={'envioId': envio['id'], 'action': 'otra'})
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Acción no válida'

    def test_cambio_manual_de_estado(self, auth_client, crear_envio, leer):
        envio, _ = crear_envio()
        response = auth_client.patch('/api/tienda-envios', json={'envioId': envio['id'], 'estado': 'cancelado'})
        assert response.status_code == 200
        assert leer(TiendaEnvio, envio['id'])['estado'] == 'cancelado'

        invalido = auth_client.patch('/api/tienda-envios', json={'envioId': envio['id'], 'estado': 'perdido'})
        assert invalido.status_code == 400
        manual = auth_client.patch('/api/tienda-envios', json={'envioId': envio['id'], 'estado': 'completado'})
        assert manual.status_code == 400


class TestCancelacion:
    def test_cancelar_devuelve_stock(self, auth_client, escenario, crear_envio, leer):
        envio, _ = crear_envio()

        response = auth_client.delete(f"/api/tienda-envios?envioId={envio['id']}")

        assert response.status_code == 200
        assert leer(TiendaEnvio, envio['id']) is None
        assert leer(Inventario, escenario['toyo'])['cantidad'] == 10
        assert leer(Inventario, escenario['bosch'])['cantidad'] == 5

    def test_producto_central_borrado(self, auth_client, escenario, crear_envio, leer):
        envio, _ = crear_envio()
        auth_client.delete(f"/api/inventory?id={escenario['bosch']}")

        response = auth_client.delete(f"/api/tienda-envios?envioId={envio['id']}")

        assert response.status_code == 200
        assert leer(Inventario, escenario['toyo'])['cantidad'] == 10

    def test_no_se_cancela_completado(self, auth_client, crear_envio):
        envio, items = crear_envio()
        auth_client.patch('/api/tienda-envios', json={
            'envioId': envio['id'], 'action': 'importar_precios', 'items': precios(items, toyo=180, bosch=520),
        })
        auth_client.patch('/api/tienda-envios', json={'envioId': envio['id'], 'action': 'confirmar'})

        response = auth_client.delete(f"/api/tienda-envios?envioId={envio['id']}")
        assert response.status_code == 400
        assert response.get_json()['error'] == 'No se puede eliminar un envío completado'

    def test_cancelar_inexistente(self, auth_client):
        assert auth_client.delete('/api/tienda-envios?envioId=nada').status_code == 404


class TestExcel:
    def test_exportar(self, auth_client, crear_envio):
        envio, items = crear_envio()

        response = auth_client.get(f"/api/tienda-envios/excel?envioId={envio['id']}")

        assert response.status_code == 200
        disposition = response.headers['Content-Disposition']
        assert 'Envio_Sucursal_Norte_' in disposition
        sheet = load_workbook(io.BytesIO(response.data)).active
        assert [c.value for c in sheet[1]] == ['ID', 'Marca', 'Amperaje', 'Cantidad', 'Precio Cliente Final']
        assert sheet.column_dimensions['A'].hidden is True
        assert {sheet.cell(row=r, column=1).value for r in (2, 3)} == {i['id'] for i in items}

    def test_importar_precios(self, auth_client, crear_envio, leer):
        envio, items = crear_envio()
        toyo = next(i for i in items if i['marca'] == 'Toyo')
        workbook = Workbook()
        sheet = workbook.active
        sheet.append(['ID', 'Marca', 'Amperaje', 'Cantidad', 'Precio Cliente Final'])
        sheet.append([toyo['id'], 'Toyo', '45 Amp', 4, 180])
        sheet.append(['', 'BOSCH', '60 amp', 2, 'abc'])
        sheet.append(['', 'Otra', '1 Amp', 1, 50])
        archivo = io.BytesIO()
        workbook.save(archivo)
        archivo.seek(0)

        response = auth_client.post(
            '/api/tienda-envios/excel',
            data={'file': (archivo, 'precios.xlsx'), 'envioId': envio['id']},
            content_type='multipart/form-data',
        )

        data = response.get_json()
        assert response.status_code == 200
        assert data['actualizados'] == 1
        assert data['sinPrecio'] == 1
        assert data['errores'] == 1
        assert data['todosConPrecio'] is False
        assert leer(TiendaEnvio, envio['id'])['estado'] == 'pendiente'

    def test_importar_completa_precios(self, auth_client, crear_envio, leer):
        envio, items = crear_envio()
        workbook = Workbook()
        sheet = workbook.active
        sheet.append(['ID', 'Marca', 'Amperaje', 'Cantidad', 'Precio Cliente Final'])
        for item in items:
            sheet.append([item['id'], item['marca'], item['amperaje'], item['cantidad'], '250,50'])
        archivo = io.BytesIO()
        workbook.save(archivo)
        archivo.seek(0)

        data = auth_client.post(
            '/api/tienda-envios/excel',
            data={'file': (archivo, 'precios.xlsx'), 'envioId': envio['id']},
            content_type='multipart/form-data',
        ).get_json()

        assert data['todosConPrecio'] is True
        assert leer(TiendaEnvio, envio['id'])['estado'] == 'precios_asignados'

    def test_envio_sin_items(self, app, auth_client, escenario):
        with app.app_context():
            envio = TiendaEnvio(tienda_id=escenario['tienda'], estado='pendiente')
            db.session.add(envio)
            db.session.commit()
            envio_id = envio.id

        response = auth_client.get(f'/api/tienda-envios/excel?envioId={envio_id}')
        assert response.status_code == 400
        assert response.get_json()['error'] == 'No hay items en este envío'
