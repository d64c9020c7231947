import json

import pytest

from backend.app.errors import BatchPublishError, UpstreamUnavailable
from backend.app.messaging import BrandPublisher, RedisBrokerQueue
from backend.app.services.initial_load_service import InitialLoadService


@pytest.fixture
def queue(fake_redis):
    return RedisBrokerQueue(fake_redis)


def test_run_publishes_every_type(fipe, fipe_client, queue, fake_redis):
    fipe.add_brand("carros", "1", "Acura")
    fipe.add_brand("carros", "21", "Fiat")
    fipe.add_brand("motos", "77", "Honda")
    summary = InitialLoadService(fipe_client, BrandPublisher(queue)).run()
    assert summary.published == {"carros": 2, "motos": 1, "caminhoes": 0}
    assert summary.total == 3
    assert summary.as_dict() == {"porTipo": {"carros": 2, "motos": 1, "caminhoes": 0}, "total": 3}
    assert fipe.requests == ["/carros/marcas", "/motos/marcas", "/caminhoes/marcas"]
    sent = [json.loads(p) for p in fake_redis.lrange("fipe:marcas", 0, -1)]
    assert sorted((m["codigoMarca"], m["tipoVeiculo"]) for m in sent) == [
        ("1", "carros"), ("21", "carros"), ("77", "motos")
    ]


def test_run_limited_to_one_type(fipe, fipe_client, queue):
    fipe.add_brand("motos", "77", "Honda")
    summary = InitialLoadService(fipe_client, BrandPublisher(queue)).run(["motos"])
    assert summary.published == {"motos": 1}
    assert fipe.requests == ["/motos/marcas"]


def test_upstream_failure_propagates(fipe, fipe_client, queue):
    fipe.fail("/motos/marcas", times=10)
    with pytest.raises(UpstreamUnavailable):
        InitialLoadService(fipe_client, BrandPublisher(queue)).run()
    assert "/caminhoes/marcas" not in fipe.requests


def test_publish_failure_propagates(fipe, fipe_client, queue, fake_redis):
    fipe.add_brand("carros", "1", "Acura")
    fake_redis.down = True
    with pytest.raises(BatchPublishError):
        InitialLoadService(fipe_client, BrandPublisher(queue)).run()


def test_fetch_brands(fipe, fipe_client, queue):
    fipe.add_brand("caminhoes", "102", "Volvo")
    brands = InitialLoadService(fipe_client, BrandPublisher(queue)).fetch_brands("caminhoes")
    assert [b.name for b in brands] == ["Volvo"]
