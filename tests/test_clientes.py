from models.database import Cliente


class TestClientes:
    def test_crear_y_listar_con_estadisticas(self, auth_client):
        auth_client.post('/api/clientes', json={'nombre': 'Taller Rojas', 'telefono': '70012345'})
        auth_client.post('/api/clientes', json={'nombre': 'Autopartes Sur', 'email': 'sur@mail.com'})

        data = auth_client.get('/api/clientes').get_json()
        assert data['total'] == 2
        assert [c['nombre'] for c in data['items']] == ['Autopartes Sur', 'Taller Rojas']
        assert data['stats'] == {
            'totalClientes': 2, 'conEmail': 1, 'conTelefono': 1, 'conDireccion': 0,
        }

    def test_nombre_requerido(self, auth_client):
        response = auth_client.post('/api/clientes', json={'telefono': '700'})
        assert response.status_code == 400
        assert response.get_json()['error'] == 'El nombre es requerido'

    def test_autocompletado(self, auth_client):
        auth_client.post('/api/clientes', json={'nombre': 'Taller Rojas'})
        auth_client.post('/api/clientes', json={'nombre': 'Autopartes Sur'})
        clientes = auth_client.get('/api/clientes?searchCliente=tall').get_json()['clientes']
        assert [c['nombre'] for c in clientes] == ['Taller Rojas']

    def test_importacion_masiva(self, auth_client):
        filas = [{'Nombre': 'Cliente A'}, {'nombre': 'Cliente B'}, {'telefono': 'sin nombre'}]
        analisis = auth_client.post('/api/clientes?mode=analyze', json=filas).get_json()
        assert analisis['analysis']['total'] == 2

        data = auth_client.post('/api/clientes', json=filas).get_json()
        assert data['inserted'] == 2

    def test_actualizar_y_eliminar(self, auth_client, leer):
        cliente_id = auth_client.post('/api/clientes', json={'nombre': 'Taller'}).get_json()['item']['id']

        auth_client.patch('/api/clientes', json={'id': cliente_id, 'nombre': 'Taller Rojas'})
        assert leer(Cliente, cliente_id)['nombre'] == 'Taller Rojas'

        assert auth_client.delete(f'/api/clientes?id={cliente_id}').status_code == 200
        assert leer(Cliente, cliente_id) is None

    def test_exportar_excel(self, auth_client):
        auth_client.post('/api/clientes', json={'nombre': 'Taller'})
        response = auth_client.get('/api/clientes/excel')
        assert response.status_code == 200
        assert response.mimetype.endswith('spreadsheetml.sheet')
