import time
from datetime import datetime

import pytest
from sqlalchemy.exc import IntegrityError

from backend.app.errors import DuplicateKey, NotFound, ValidationError
from backend.app.models import Brand, VehicleModel
from backend.app.services.ingestion_service import BrandIngestionProcessor
from backend.app.services.query_service import QueryService
from backend.app.utils.redis_cache import CatalogCache


def seed(session_factory):
    now = datetime(2024, 1, 1)
    with session_factory() as db:
        fiat = Brand(fipe_code="21", name="Fiat", vehicle_type="carros", created_at=now, updated_at=now)
        acura = Brand(fipe_code="1", name="Acura", vehicle_type="carros", created_at=now, updated_at=now)
        honda = Brand(fipe_code="77", name="Honda", vehicle_type="motos", created_at=now, updated_at=now)
        db.add_all([fiat, acura, honda])
        db.flush()
        db.add_all([
            VehicleModel(fipe_code="001001", name="Uno", brand_id=fiat.id, created_at=now, updated_at=now),
            VehicleModel(fipe_code="001002", name="Palio", brand_id=fiat.id, created_at=now, updated_at=now),
            VehicleModel(fipe_code="001003", name="Argo", brand_id=fiat.id, created_at=now, updated_at=now),
        ])
        db.commit()


@pytest.fixture
def service(session_factory, cache):
    seed(session_factory)
    db = session_factory()
    yield QueryService(db, cache)
    db.close()


def test_list_brands_filters_and_orders(service):
    items, total = service.list_brands("CARROS", 0, 50)
    assert total == 2
    assert [b.name for b in items] == ["Acura", "Fiat"]
    items, total = service.list_brands(None, 0, 50)
    assert total == 3
    assert [b.name for b in items] == ["Acura", "Fiat", "Honda"]


def test_list_brands_pages(service):
    items, total = service.list_brands(None, 1, 2)
    assert total == 3
    assert [b.name for b in items] == ["Honda"]
    assert service.list_brands(None, 5, 2) == ([], 3)


def test_bad_paging_is_validation_error(service):
    with pytest.raises(ValidationError):
        service.list_brands(None, -1, 10)
    with pytest.raises(ValidationError):
        service.list_models_by_brand("21", 0, 0)


def test_list_brands_served_from_cache(service, fake_redis):
    service.list_brands("carros", 0, 50)
    assert "fipe:cache:marcas:list:v0:carros:0:50" in fake_redis.strings
    fake_redis.strings["fipe:cache:marcas:list:v0:carros:0:50"] = (
        '{"items": [{"codigo": "9", "nome": "Cached", "tipoVeiculo": "carros"}], "total": 1}'
    )
    items, total = service.list_brands("carros", 0, 50)
    assert ([b.name for b in items], total) == (["Cached"], 1)


def test_cache_outage_falls_back_to_store(session_factory, fake_redis):
    seed(session_factory)
    fake_redis.down = True
    with session_factory() as db:
        items, total = QueryService(db, CatalogCache(fake_redis)).list_brands("motos", 0, 50)
    assert ([b.name for b in items], total) == (["Honda"], 1)


@pytest.mark.parametrize(
    "raw",
    [
        '"garbage"',
        "[1, 2]",
        '{"items": "x", "total": 1}',
        '{"items": [], "total": "1"}',
        '{"items": [{"nome": 5}], "total": 1}',
        '{"total": 1}',
    ],
)
def test_malformed_cached_page_falls_back_to_store(service, fake_redis, raw):
    fake_redis.strings["fipe:cache:marcas:list:v0:carros:0:50"] = raw
    items, total = service.list_brands("carros", 0, 50)
    assert ([b.name for b in items], total) == (["Acura", "Fiat"], 2)


def test_malformed_cached_count_and_entities_fall_back_to_store(service, fake_redis):
    fake_redis.strings["fipe:cache:stats:marcas:v0:all"] = '"3"'
    fake_redis.strings["fipe:cache:stats:modelos:21:v0"] = "true"
    fake_redis.strings["fipe:cache:marca:77:v0"] = '{"nome": "Honda"}'
    fake_redis.strings["fipe:cache:modelo:001001:v0"] = "[]"
    fake_redis.strings["fipe:cache:modelos:list:21:v0:0:50"] = '{"items": [{"codigo": "9"}], "total": 1}'
    assert service.count_brands() == 3
    assert service.count_models("21") == 3
    assert service.get_brand("77").fipe_code == "77"
    assert service.get_model("001001").name == "Uno"
    assert service.list_models_by_brand("21", 0, 50)[1] == 3


class WriteBeforeFill(CatalogCache):
    """Runs a write after the reader queried the store but before it fills the cache."""

    def __init__(self, client, reader_db):
        super().__init__(client, prefix="fipe:cache")
        self.reader_db = reader_db
        self.write = None

    def put(self, kind, key, value, ttl=None):
        if self.write is not None:
            write, self.write = self.write, None
            # sqlite takes a write lock on begin, release the reader's
            self.reader_db.commit()
            write()
        return super().put(kind, key, value, ttl)


def test_late_fill_does_not_hide_concurrent_ingestion(session_factory, fake_redis, fipe, fipe_client):
    fipe.add_brand("carros", "21", "Fiat", models=[(1, "Uno")])
    db = session_factory()
    cache = WriteBeforeFill(fake_redis, db)
    processor = BrandIngestionProcessor(
        session_factory, fipe_client, cache=cache, retry_delay_ms=0, delay_between_requests_ms=0)
    cache.write = lambda: processor.process("21", "Fiat", "carros")
    service = QueryService(db, cache)

    assert service.list_brands("carros", 0, 50) == ([], 0)
    items, total = service.list_brands("carros", 0, 50)
    assert ([b.fipe_code for b in items], total) == (["21"], 1)
    db.close()


def test_late_fill_does_not_hide_concurrent_model_update(session_factory, fake_redis):
    seed(session_factory)
    db = session_factory()
    cache = WriteBeforeFill(fake_redis, db)

    def rename():
        with session_factory() as writer:
            QueryService(writer, cache).update_model("001001", "Uno Way", None)

    cache.write = rename
    service = QueryService(db, cache)
    before, _ = service.list_models_by_brand("21", 0, 50)
    assert "Uno" in [m.name for m in before]
    after, _ = service.list_models_by_brand("21", 0, 50)
    assert "Uno Way" in [m.name for m in after]
    db.close()


def test_list_models_by_brand(service):
    items, total = service.list_models_by_brand("21", 0, 2)
    assert total == 3
    assert [m.name for m in items] == ["Argo", "Palio"]
    assert {m.brand_code for m in items} == {"21"}


def test_list_models_unknown_brand(service):
    with pytest.raises(NotFound):
        service.list_models_by_brand("404", 0, 50)


def test_counts(service):
    assert service.count_brands() == 3
    assert service.count_brands("motos") == 1
    assert service.count_models("21") == 3
    assert service.count_models("77") == 0


def test_get_brand_and_model(service):
    assert service.get_brand("77").name == "Honda"
    model = service.get_model("001001")
    assert (model.name, model.brand_code) == ("Uno", "21")
    with pytest.raises(NotFound):
        service.get_brand("999")
    with pytest.raises(NotFound):
        service.get_model("999")


def test_create_brand(service):
    service.list_brands("caminhoes", 0, 50)
    created = service.create_brand("102", "Volvo", "Caminhoes")
    assert (created.fipe_code, created.vehicle_type) == ("102", "caminhoes")
    # cached list was invalidated
    assert [b.name for b in service.list_brands("caminhoes", 0, 50)[0]] == ["Volvo"]


def test_create_brand_duplicate_and_invalid(service):
    with pytest.raises(DuplicateKey):
        service.create_brand("21", "Fiat again", "carros")
    with pytest.raises(ValidationError):
        service.create_brand("500", "X", "aviao")
    with pytest.raises(ValidationError):
        service.create_brand("500", "", "carros")


def test_update_model_refreshes_timestamp_and_leaves_siblings(service):
    before = service.get_model("001002")
    time.sleep(0.01)
    updated = service.update_model("001001", "New Name", "note")
    assert (updated.name, updated.notes) == ("New Name", "note")
    assert updated.updated_at > datetime(2024, 1, 1)
    after = service.get_model("001002")
    assert (after.name, after.notes, after.updated_at) == (before.name, before.notes, before.updated_at)


def test_update_model_keeps_fields_not_given(service):
    service.update_model("001001", None, "first note")
    updated = service.update_model("001001", "   ", None)
    assert (updated.name, updated.notes) == ("Uno", "first note")


def test_update_model_never_leaves_stale_lists(service):
    service.list_models_by_brand("21", 0, 50)
    service.get_model("001001")
    service.update_model("001001", "Uno Way", None)
    items, _ = service.list_models_by_brand("21", 0, 50)
    assert "Uno Way" in [m.name for m in items]
    assert service.get_model("001001").name == "Uno Way"


def test_update_unknown_model(service):
    with pytest.raises(NotFound):
        service.update_model("999", "X", None)


def test_brand_without_vehicle_type_is_rejected_by_the_store(session_factory):
    with session_factory() as db:
        db.add(Brand(fipe_code="5", name="Sem Tipo"))
        with pytest.raises(IntegrityError):
            db.commit()
