import pytest
from sqlalchemy.exc import SQLAlchemyError
from app import db


def test_health_ok(client):
    resp = client.get('/health')
    assert resp.status_code == 200
    assert resp.data == b'ok'


def test_health_db_error(monkeypatch, client):
    def raise_error(*args, **kwargs):
        raise SQLAlchemyError("fail")
    monkeypatch.setattr(db.session, 'execute', raise_error)
    resp = client.get('/health')
    assert resp.status_code == 500
    assert resp.is_json
    assert resp.json['error'] == 'Database error'


def test_index_describes_service(client):
    resp = client.get('/')
    assert resp.status_code == 200
    assert resp.json['service'] == 'aleks-coins'


def test_unknown_route_is_json_404(client):
    resp = client.get('/no-such-page')
    assert resp.status_code == 404
    assert resp.json['status'] == 'error'


def test_security_headers_present(client):
    resp = client.get('/health')
    assert resp.headers['X-Frame-Options'] == 'SAMEORIGIN'
    assert resp.headers['X-Content-Type-Options'] == 'nosniff'
