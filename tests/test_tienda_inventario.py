from models.database import Inventario, TiendaInventario


class TestListado:
    def test_requiere_tienda(self, auth_client):
        assert auth_client.get('/api/tienda-inventario').status_code == 400

    def test_filtros_y_estadisticas(self, auth_client, make_tienda, make_stock_tienda):
        tienda_id = make_tienda()
        make_stock_tienda(tienda_id, 'Toyo', '45 Amp', cantidad=2, costo=100, precio_venta=150)
        make_stock_tienda(tienda_id, 'Toyo', '65 Amp', cantidad=1, costo=200, precio_venta=300)
        make_stock_tienda(tienda_id, 'Bosch', '60 Amp', cantidad=3, costo=50, precio_venta=80)

        data = auth_client.get(f'/api/tienda-inventario?tiendaId={tienda_id}&marca=Toyo').get_json()

        assert data['total'] == 2
        assert data['stats'] == {
            'totalProductos': 2, 'totalUnidades': 3, 'valorCosto': 400.0, 'valorVenta': 600.0,
        }
        assert data['marcas'] == ['Bosch', 'Toyo']
        assert data['amperajes'] == ['45 Amp', '65 Amp']

        todas = auth_client.get(f'/api/tienda-inventario?tiendaId={tienda_id}&marca=_all').get_json()
        assert todas['total'] == 3


class TestTransferencia:
    def test_transferencia_directa(self, auth_client, make_tienda, make_producto, make_stock_tienda, leer):
        tienda_id = make_tienda()
        toyo = make_producto('Toyo', '45 Amp', cantidad=10, costo=100, precio_venta=150)
        bosch = make_producto('Bosch', '60 Amp', cantidad=1)
        existente = make_stock_tienda(tienda_id, 'TOYO', '45 amp', cantidad=2, precio_venta=170)

        response = auth_client.post('/api/tienda-inventario', json={
            'tiendaId': tienda_id,
            'productos': [
                {'inventoryId': toyo, 'marca': 'Toyo', 'amperaje': '45 Amp', 'cantidad': 3},
                {'inventoryId': toyo, 'marca': 'Toyo', 'amperaje': '45 Amp', 'cantidad': 2},
                {'inventoryId': bosch, 'marca': 'Bosch', 'amperaje': '60 Amp', 'cantidad': 5},
            ],
        })

        data = response.get_json()
        assert response.status_code == 200
        assert data['message'] == 'Transferencia completada: 2 productos enviados'
        assert data['resultados']['errores'] == ['Bosch 60 Amp: Stock insuficiente']
        assert leer(Inventario, toyo)['cantidad'] == 5
        assert leer(Inventario, bosch)['cantidad'] == 1
        fila = leer(TiendaInventario, existente)
        assert fila['cantidad'] == 7
        assert fila['precio_venta'] == 170.0

    def test_cantidad_invalida(self, auth_client, make_tienda, make_producto):
        tienda_id = make_tienda()
        producto_id = make_producto()
        response = auth_client.post('/api/tienda-inventario', json={
            'tiendaId': tienda_id, 'productos': [{'inventoryId': producto_id, 'cantidad': -1}],
        })
        assert response.status_code == 400


class TestEdicionYDevolucion:
    def test_actualizar(self, auth_client, make_tienda, make_stock_tienda, leer):
        item_id = make_stock_tienda(make_tienda(), cantidad=5, costo=100, precio_venta=180)
        auth_client.patch('/api/tienda-inventario', json={'id': item_id, 'cantidad': 8, 'onlyQuantity': True})
        item = leer(TiendaInventario, item_id)
        assert item['cantidad'] == 8
        assert item['precio_venta'] == 180.0

    def test_actualizar_valida_datos(self, auth_client, make_tienda, make_stock_tienda, leer):
        item_id = make_stock_tienda(make_tienda(), cantidad=5, costo=100, precio_venta=180)

        sin_cantidad = auth_client.patch('/api/tienda-inventario', json={'id': item_id, 'precio_venta': 200})
        assert sin_cantidad.status_code == 400
        negativo = auth_client.patch('/api/tienda-inventario', json={
            'id': item_id, 'cantidad': 5, 'costo': 100, 'precio_venta': -1,
        })
        assert negativo.status_code == 400

        item = leer(TiendaInventario, item_id)
        assert item['cantidad'] == 5
        assert item['precio_venta'] == 180.0

    def test_devolver_todo(self, auth_client, make_tienda, make_producto, make_stock_tienda, leer):
        tienda_id = make_tienda()
        producto_id = make_producto('Toyo', '45 Amp', cantidad=1)
        make_stock_tienda(tienda_id, 'toyo', '45 AMP', cantidad=4)
        make_stock_tienda(tienda_id, 'Willard', '75 Amp', cantidad=2, costo=300, precio_venta=400)

        response = auth_client.delete('/api/tienda-inventario', json={'tiendaId': tienda_id, 'returnAll': True})

        data = response.get_json()
        assert data['devueltos'] == 2
        assert data['message'] == 'Se devolvieron 2 productos al inventario principal'
        assert leer(Inventario, producto_id)['cantidad'] == 5
        marcas = auth_client.get('/api/inventory?getMarcas=true').get_json()['marcas']
        assert 'Willard' in marcas
        vacia = auth_client.get(f'/api/tienda-inventario?tiendaId={tienda_id}').get_json()
        assert vacia['total'] == 0

    def test_devolver_todo_sin_inventario(self, auth_client, make_tienda):
        response = auth_client.delete('/api/tienda-inventario', json={'tiendaId': make_tienda(), 'returnAll': True})
        assert response.get_json()['message'] == 'No hay inventario para devolver'

    def test_eliminar_item_devolviendo(self, auth_client, make_tienda, make_producto, make_stock_tienda, leer):
        producto_id = make_producto('Toyo', '45 Amp', cantidad=1)
        item_id = make_stock_tienda(make_tienda(), cantidad=3)

        response = auth_client.delete('/api/tienda-inventario', json={'id': item_id, 'returnToInventory': True})

        assert response.get_json()['message'] == 'Producto devuelto al inventario central'
        assert leer(TiendaInventario, item_id) is None
        assert leer(Inventario, producto_id)['cantidad'] == 4

    def test_eliminar_item_sin_devolver(self, auth_client, make_tienda, make_producto, make_stock_tienda, leer):
        producto_id = make_producto('Toyo', '45 Amp', cantidad=1)
        item_id = make_stock_tienda(make_tienda(), cantidad=3)

        response = auth_client.delete('/api/tienda-inventario', json={'id': item_id})

        assert response.get_json()['message'] == 'Producto eliminado de la tienda'
        assert leer(Inventario, producto_id)['cantidad'] == 1

    def test_eliminar_inexistente(self, auth_client):
        assert auth_client.delete('/api/tienda-inventario', json={'id': 'nada'}).status_code == 404


class TestSaldos:
    def productos(self):
        return [
            {'marca': 'Toyo', 'amperaje': '45 Amp', 'cantidad': 3, 'precio_venta': 200},
            {'marca': 'Bosch', 'amperaje': '60 Amp', 'cantidad': 2, 'precio_venta': 100, 'costo': 90},
            {'marca': 'Willard', 'amperaje': '75 Amp', 'cantidad': 1},
        ]

    def test_analizar(self, auth_client, make_tienda, make_stock_tienda):
        tienda_id = make_tienda()
        make_stock_tienda(tienda_id, 'toyo', '45 amp', cantidad=1)

        data = auth_client.post('/api/tienda-inventario/saldos', json={
            'tiendaId': tienda_id, 'productos': self.productos(), 'mode': 'analyze',
        }).get_json()['analysis']

        assert data['total'] == 3
        assert data['new'] == 1
        assert data['existing'] == 1
        assert data['updateItems'][0]['existingCantidad'] == 1

    def test_importar_sin_tocar_central(self, auth_client, make_tienda, make_producto, make_stock_tienda, leer):
        tienda_id = make_tienda()
        producto_id = make_producto('Toyo', '45 Amp', cantidad=10)
        existente = make_stock_tienda(tienda_id, 'toyo', '45 amp', cantidad=1, precio_venta=150)

        response = auth_client.post('/api/tienda-inventario/saldos', json={
            'tiendaId': tienda_id, 'productos': self.productos(),
        })

        data = response.get_json()
        assert data['message'] == 'Saldo importado: 1 nuevos, 1 actualizados'
        fila = leer(TiendaInventario, existente)
        assert fila['cantidad'] == 4
        assert fila['precio_venta'] == 200.0
        assert leer(Inventario, producto_id)['cantidad'] == 10

        items = auth_client.get(f'/api/tienda-inventario?tiendaId={tienda_id}&noPagination=true').get_json()['items']
        bosch = next(i for i in items if i['marca'] == 'Bosch')
        assert bosch['costo'] == 90.0

    def test_costo_estimado(self, auth_client, make_tienda):
        tienda_id = make_tienda()
        auth_client.post('/api/tienda-inventario/saldos', json={
            'tiendaId': tienda_id,
            'productos': [{'marca': 'Toyo', 'amperaje': '45 Amp', 'cantidad': 3, 'precio_venta': 200}],
        })
        items = auth_client.get(f'/api/tienda-inventario?tiendaId={tienda_id}&noPagination=true').get_json()['items']
        assert items[0]['costo'] == 140.0
