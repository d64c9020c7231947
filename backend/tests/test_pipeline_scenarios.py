from sqlalchemy import func, select

from backend.app.integrations.fipe import BrandRef
from backend.app.messaging import BrandConsumer, BrandPublisher, ConsumerWorker, RedisBrokerQueue
from backend.app.models import Brand
from backend.app.services.ingestion_service import BrandIngestionProcessor
from backend.app.services.query_service import QueryService


def build_pipeline(session_factory, fake_redis, fipe_client, cache):
    queue = RedisBrokerQueue(fake_redis, "fipe:marcas", max_deliveries=3, poll_interval=0.01)
    processor = BrandIngestionProcessor(
        session_factory, fipe_client, cache=cache, retry_delay_ms=0, delay_between_requests_ms=0)
    worker = ConsumerWorker(queue, BrandConsumer(queue, processor), concurrency=3)
    return queue, BrandPublisher(queue), worker


def test_same_brand_published_twice_yields_one_row(session_factory, fake_redis, fipe, fipe_client, cache):
    fipe.add_brand("carros", "21", "Fiat", models=[(1, "Uno")])
    queue, publisher, worker = build_pipeline(session_factory, fake_redis, fipe_client, cache)
    publisher.publish("21", "Fiat", "carros")
    publisher.publish("21", "Fiat", "carros")
    assert worker.drain() == 2
    with session_factory() as db:
        assert db.execute(select(func.count()).select_from(Brand)).scalar_one() == 1
    assert queue.stats() == {"ready": 0, "processing": 0, "dead_letter": 0}


def test_batch_of_three_is_listed_by_name(session_factory, fake_redis, fipe, fipe_client, cache):
    for code, name in (("3", "Chevrolet"), ("1", "Acura"), ("2", "BMW")):
        fipe.add_brand("carros", code, name, models=[(int(code) * 100, f"{name} model")])
    queue, publisher, worker = build_pipeline(session_factory, fake_redis, fipe_client, cache)
    # warm the list cache so ingestion has to invalidate it
    with session_factory() as db:
        assert QueryService(db, cache).list_brands("carros", 0, 50) == ([], 0)

    brands = [BrandRef(b["codigo"], b["nome"]) for b in fipe.brands["carros"]]
    assert publisher.publish_batch(brands, "carros") == 3
    assert worker.drain() == 3

    with session_factory() as db:
        items, total = QueryService(db, cache).list_brands("carros", 0, 50)
    assert total == 3
    assert [b.name for b in items] == ["Acura", "BMW", "Chevrolet"]


def test_upstream_outage_dead_letters_after_max_deliveries(session_factory, fake_redis, fipe, fipe_client, cache):
    fipe.add_brand("motos", "77", "Honda", models=[(1, "CG")])
    fipe.fail("/motos/marcas/77/modelos", times=1000)
    queue, publisher, worker = build_pipeline(session_factory, fake_redis, fipe_client, cache)
    publisher.publish("77", "Honda", "motos")
    for _ in range(3):
        worker.drain()
    assert queue.stats() == {"ready": 0, "processing": 0, "dead_letter": 1}
    # brand stays persisted without models
    with session_factory() as db:
        assert db.execute(select(Brand.fipe_code)).scalar_one() == "77"
