from school_audit.openapi import build_openapi_spec


def test_openapi_spec_available(client):
    resp = client.get('/openapi.json')
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['openapi'].startswith('3.')
    assert '/audit/entries' in body['paths']
    assert set(body['paths']['/audit/entries']) == {'get', 'head', 'post'}


def test_docs_page(client):
    resp = client.get('/docs')
    assert resp.status_code == 200
    assert b'Redoc' in resp.data or b'redoc' in resp.data


def test_spec_is_deterministic():
    assert build_openapi_spec() == build_openapi_spec()


def test_list_caching_headers_documented():
    spec = build_openapi_spec()
    for meth in ('get', 'head'):
        op = spec['paths']['/audit/entries'][meth]
        hdrs = op['responses']['200'].get('headers', {})
        for h in ['ETag', 'Last-Modified', 'X-Last-Modified-ISO']:
            assert h in hdrs, f"{meth} missing header doc {h}"
        assert '304' in op['responses']


def test_parameter_refs_resolve():
    spec = build_openapi_spec()
    params = spec['components']['parameters']
    for path, ops in spec['paths'].items():
        for method, op in ops.items():
            for p in op['parameters']:
                if '$ref' in p:
                    assert p['$ref'].rsplit('/', 1)[-1] in params, f"{method} {path} bad ref {p['$ref']}"
                else:
                    assert p['in'] == 'path' and '{' + p['name'] + '}' in path


def test_health(client):
    assert client.get('/healthz').get_json() == {'status': 'ok'}
