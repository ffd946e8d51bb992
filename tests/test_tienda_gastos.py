from models.database import TiendaGasto


def gasto(client, tienda_id, categoria='Alquiler', monto=1500, fecha='2026-02-01', **extra):
    payload = {'tiendaId': tienda_id, 'categoria': categoria, 'monto': monto, 'fecha': fecha}
    payload.update(extra)
    return client.post('/api/tienda-gastos', json=payload)


class TestGastos:
    def test_registrar_y_resumir(self, auth_client, make_tienda):
        tienda_id = make_tienda()
        gasto(auth_client, tienda_id, 'Alquiler', 1500)
        gasto(auth_client, tienda_id, 'Servicios', 200)
        gasto(auth_client, tienda_id, 'Servicios', 50.5, fecha='2026-03-01')

        data = auth_client.get(
            f'/api/tienda-gastos?tiendaId={tienda_id}&fechaDesde=2026-02-01&fechaHasta=2026-02-28'
        ).get_json()

        assert data['total'] == 2
        assert data['totalGastos'] == 1700.0
        assert data['gastosPorCategoria'] == {'Alquiler': 1500.0, 'Servicios': 200.0}

        servicios = auth_client.get(f'/api/tienda-gastos?tiendaId={tienda_id}&categoria=Servicios').get_json()
        assert servicios['totalGastos'] == 250.5

    def test_categorias(self, auth_client, make_tienda):
        tienda_id = make_tienda()
        gasto(auth_client, tienda_id, 'Servicios')
        gasto(auth_client, tienda_id, 'Alquiler')
        assert auth_client.get('/api/tienda-gastos?getCategorias=true').get_json()['categorias'] == [
            'Alquiler', 'Servicios',
        ]

    def test_validaciones(self, auth_client, make_tienda):
        tienda_id = make_tienda()
        assert gasto(auth_client, tienda_id, categoria='').status_code == 400
        assert gasto(auth_client, tienda_id, monto=0).status_code == 400
        assert gasto(auth_client, tienda_id, monto='abc').status_code == 400
        assert gasto(auth_client, 'nada').status_code == 404

    def test_editar_y_eliminar(self, auth_client, make_tienda, leer):
        gasto_id = gasto(auth_client, make_tienda()).get_json()['gasto']['id']

        auth_client.patch('/api/tienda-gastos', json={'id': gasto_id, 'monto': 1800, 'descripcion': 'Marzo'})
        actualizado = leer(TiendaGasto, gasto_id)
        assert actualizado['monto'] == 1800.0
        assert actualizado['descripcion'] == 'Marzo'

        assert auth_client.delete(f'/api/tienda-gastos?id={gasto_id}').status_code == 200
        assert leer(TiendaGasto, gasto_id) is None
