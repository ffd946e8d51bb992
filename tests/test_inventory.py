import io

from openpyxl import Workbook, load_workbook

from models.database import Inventario


def excel(headers, rows):
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(headers)
    for row in rows:
        sheet.append(row)
    output = io.BytesIO()
    workbook.save(output)
    output.seek(0)
    return output


class TestInventarioCrud:
    def test_crear_producto(self, auth_client):
        response = auth_client.post('/api/inventory', json={
            'marca': 'Toyo', 'amperaje': '45 Amp', 'cantidad': 10, 'costo': 100, 'precioVenta': 150,
        })
        assert response.status_code == 200
        item = response.get_json()['item']
        assert item['cantidad'] == 10
        assert item['precio_venta'] == 150.0

    def test_marca_y_amperaje_requeridos(self, auth_client):
        response = auth_client.post('/api/inventory', json={'marca': 'Toyo'})
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Marca y amperaje son requeridos'

    def test_duplicado_sin_distinguir_mayusculas(self, auth_client, make_producto):
        make_producto('Toyo', '45 Amp')
        response = auth_client.post('/api/inventory', json={'marca': 'TOYO', 'amperaje': '45 amp'})
        assert response.status_code == 400

    def test_listado_paginado_con_totales(self, auth_client, make_producto):
        for amperaje in ('45 Amp', '55 Amp', '65 Amp', '75 Amp', '85 Amp', '95 Amp'):
            make_producto('Toyo', amperaje, cantidad=2, costo=10, precio_venta=20)
        make_producto('Bosch', '60 Amp', cantidad=1, costo=10, precio_venta=20)

        data = auth_client.get('/api/inventory?page=1').get_json()
        assert len(data['items']) == 5
        assert data['total'] == 7
        assert data['totalPages'] == 2
        assert data['totalUnits'] == 13
        assert data['totalCost'] == 130.0

        filtrado = auth_client.get('/api/inventory?marca=Bosch').get_json()
        assert filtrado['total'] == 1
        assert filtrado['stats']['unidadesTotales'] == 1
        assert filtrado['totalProducts'] == 7

    def test_marcas_y_amperajes(self, auth_client, make_producto):
        make_producto('Toyo', '45 Amp')
        make_producto('Toyo', '65 Amp')
        make_producto('Bosch', '60 Amp')

        assert auth_client.get('/api/inventory?getMarcas=true').get_json()['marcas'] == ['Bosch', 'Toyo']
        amperajes = auth_client.get('/api/inventory?getAmperajes=true&marca=Toyo').get_json()['amperajes']
        assert amperajes == ['45 Amp', '65 Amp']

    def test_busqueda_exacta(self, auth_client, make_producto):
        make_producto('Toyo', '45 Amp')
        data = auth_client.get('/api/inventory?searchExact=true&marca=toyo&amperaje=45 AMP').get_json()
        assert data['product']['marca'] == 'Toyo'

    def test_ajustar_solo_cantidad(self, auth_client, make_producto, leer):
        producto_id = make_producto(cantidad=10, costo=100)
        response = auth_client.patch('/api/inventory', json={
            'id': producto_id, 'cantidad': 3, 'onlyQuantity': True,
        })
        assert response.status_code == 200
        producto = leer(Inventario, producto_id)
        assert producto['cantidad'] == 3
        assert producto['costo'] == 100.0

    def test_actualizar_requiere_cantidad(self, auth_client, make_producto, leer):
        producto_id = make_producto(cantidad=10)
        response = auth_client.patch('/api/inventory', json={'id': producto_id, 'costo': 90})
        assert response.status_code == 400
        assert leer(Inventario, producto_id)['cantidad'] == 10

    def test_actualizar_precios_negativos(self, auth_client, make_producto, leer):
        producto_id = make_producto(cantidad=10, costo=100)
        response = auth_client.patch('/api/inventory', json={
            'id': producto_id, 'cantidad': 10, 'costo': -5, 'precioVenta': 150,
        })
        assert response.status_code == 400
        assert leer(Inventario, producto_id)['costo'] == 100.0

    def test_actualizar_conserva_precios_omitidos(self, auth_client, make_producto, leer):
        producto_id = make_producto(cantidad=10, costo=100, precio_venta=150)
        auth_client.patch('/api/inventory', json={'id': producto_id, 'cantidad': 7, 'costo': 110})
        producto = leer(Inventario, producto_id)
        assert producto['cantidad'] == 7
        assert producto['costo'] == 110.0
        assert producto['precio_venta'] == 150.0

    def test_cantidad_no_finita(self, auth_client):
        for valor in ('Infinity', 'NaN'):
            response = auth_client.post('/api/inventory', json={'marca': 'X', 'amperaje': '1', 'cantidad': valor})
            assert response.status_code == 400
            assert response.get_json()['error'] == f'Cantidad inválida: {valor}'

    def test_eliminar(self, auth_client, make_producto, leer):
        producto_id = make_producto()
        assert auth_client.delete(f'/api/inventory?id={producto_id}').status_code == 200
        assert leer(Inventario, producto_id) is None
        assert auth_client.delete('/api/inventory?id=nada').status_code == 404


class TestImportacion:
    def test_analizar_no_modifica(self, auth_client, make_producto):
        make_producto('Toyo', '45 Amp', cantidad=10)
        filas = [
            {'marca': 'toyo', 'amperaje': '45 amp', 'cantidad': 5},
            {'marca': 'Bosch', 'amperaje': '60 Amp', 'cantidad': 2},
        ]
        data = auth_client.post('/api/inventory?mode=analyze', json=filas).get_json()
        assert data['analysis']['new'] == 1
        assert data['analysis']['existing'] == 1
        assert auth_client.get('/api/inventory').get_json()['total'] == 1

    def test_importar_suma_existentes(self, auth_client, make_producto, leer):
        producto_id = make_producto('Toyo', '45 Amp', cantidad=10, costo=100)
        filas = [
            {'marca': 'Toyo', 'amperaje': '45 Amp', 'cantidad': 5, 'costo': 120},
            {'Marca': 'Bosch', 'Amperaje': '60 Amp', 'Cantidad': 2, 'Precio de Venta': 700},
        ]
        data = auth_client.post('/api/inventory', json=filas).get_json()
        assert data['inserted'] == 1
        assert data['updated'] == 1
        producto = leer(Inventario, producto_id)
        assert producto['cantidad'] == 15
        assert producto['costo'] == 100.0

    def test_importar_reemplazando_cantidades_y_precios(self, auth_client, make_producto, leer):
        producto_id = make_producto('Toyo', '45 Amp', cantidad=10, costo=100)
        filas = [{'marca': 'Toyo', 'amperaje': '45 Amp', 'cantidad': 4, 'costo': 120, 'precio_venta': 200}]
        auth_client.post('/api/inventory?updateMode=replace&updatePrices=true', json=filas)
        producto = leer(Inventario, producto_id)
        assert producto['cantidad'] == 4
        assert producto['costo'] == 120.0

    def test_importar_sin_filas_validas(self, auth_client):
        response = auth_client.post('/api/inventory', json=[{'marca': 'Toyo'}])
        assert response.status_code == 400

    def test_importar_omite_cantidades_negativas(self, auth_client, make_producto, leer):
        producto_id = make_producto('Toyo', '45 Amp', cantidad=3)
        filas = [
            {'Marca': 'Toyo', 'Amperaje': '45 Amp', 'Cantidad': -10},
            {'Marca': 'Nueva', 'Amperaje': '1 Amp', 'Cantidad': -4},
            {'Marca': 'Bosch', 'Amperaje': '60 Amp', 'Cantidad': 2},
        ]
        data = auth_client.post('/api/inventory', json=filas).get_json()
        assert data['inserted'] == 1
        assert data['updated'] == 0
        assert data['invalid'] == 2

        assert leer(Inventario, producto_id)['cantidad'] == 3
        items = auth_client.get('/api/inventory?noPagination=true').get_json()['items']
        assert sorted((i['marca'], i['cantidad']) for i in items) == [('Bosch', 2), ('Toyo', 3)]

    def test_importar_solo_filas_negativas(self, auth_client, make_producto, leer):
        producto_id = make_producto('Toyo', '45 Amp', cantidad=3)
        filas = [{'marca': 'Toyo', 'amperaje': '45 Amp', 'cantidad': -1}]
        response = auth_client.post('/api/inventory?updateMode=replace', json=filas)
        assert response.status_code == 400
        assert leer(Inventario, producto_id)['cantidad'] == 3


class TestExcel:
    def test_exportar(self, auth_client, make_producto):
        make_producto('Toyo', '45 Amp', cantidad=10)
        response = auth_client.get('/api/inventory/excel')
        assert response.status_code == 200
        sheet = load_workbook(io.BytesIO(response.data)).active
        assert [c.value for c in sheet[1]] == ['Marca', 'Amperaje', 'Cantidad', 'Costo', 'Precio de Venta']
        assert sheet['A2'].value == 'Toyo'

    def test_importar_excel(self, auth_client):
        archivo = excel(
            ['Marca', 'Amperaje', 'Cantidad', 'Costo', 'Precio de Venta'],
            [['Toyo', '45 Amp', 3, 100, 150], [None, None, None, None, None]],
        )
        response = auth_client.post(
            '/api/inventory/excel',
            data={'file': (archivo, 'inventario.xlsx')},
            content_type='multipart/form-data',
        )
        assert response.status_code == 200
        assert response.get_json()['inserted'] == 1

    def test_archivo_invalido(self, auth_client):
        response = auth_client.post(
            '/api/inventory/excel',
            data={'file': (io.BytesIO(b'no es excel'), 'x.xlsx')},
            content_type='multipart/form-data',
        )
        assert response.status_code == 400
