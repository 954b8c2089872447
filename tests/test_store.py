import json

import httpx
import pytest

from invoice_gen.cache import INVOICES_KEY, DiskCache, LocalCache
from invoice_gen.errors import DuplicateInvoiceNumber, InvalidBackup, NotFound, QuotaExceeded, StoreError
from invoice_gen.schemas import InvoicePayload, InvoiceStatus
from invoice_gen.store import LocalInvoiceStore, RestInvoiceStore


def payload(number="GP-0001", **fields):
    return InvoicePayload(invoice_number=number, invoice_for_name="Acme", total=100, **fields)


# Local store

def test_local_create_and_fetch(store):
    created = store.create(payload())
    assert created.id.startswith("inv_")
    assert created.created_at == created.updated_at
    assert store.get_by_id(created.id).invoice_number == "GP-0001"


def test_local_duplicate_number_is_rejected(store):
    store.create(payload())
    with pytest.raises(DuplicateInvoiceNumber):
        store.create(payload())


def test_local_update_and_delete(store):
    created = store.create(payload())
    updated = store.update(created.id, payload(status=InvoiceStatus.PAID))
    assert updated.status is InvoiceStatus.PAID
    assert updated.created_at == created.created_at

    store.delete(created.id)
    with pytest.raises(NotFound):
        store.get_by_id(created.id)
    with pytest.raises(NotFound):
        store.delete(created.id)
    with pytest.raises(NotFound):
        store.update(created.id, payload())


def test_local_update_cannot_steal_another_number(store):
    store.create(payload("GP-0001"))
    second = store.create(payload("GP-0002"))
    with pytest.raises(DuplicateInvoiceNumber):
        store.update(second.id, payload("GP-0001"))


def test_local_list_is_newest_first(store):
    store.create(payload("GP-0001"))
    store.create(payload("GP-0002"))
    numbers = [record.invoice_number for record in store.list_all()]
    assert sorted(numbers) == ["GP-0001", "GP-0002"]
    created = [record.created_at for record in store.list_all()]
    assert created == sorted(created, reverse=True)


def test_local_store_surfaces_quota_as_store_error():
    store = LocalInvoiceStore(LocalCache(quota_bytes=10))
    with pytest.raises(StoreError):
        store.create(payload())


# Backups

def test_backup_restores_into_another_store(store):
    first = store.create(payload("GP-0001"))
    store.create(payload("GP-0002"))
    backup = store.export_json()
    assert json.loads(backup)[0]["id"] == first.id

    other = LocalInvoiceStore(LocalCache())
    other.create(payload("GP-0009"))
    assert other.import_json(backup) == 2
    assert sorted(r.invoice_number for r in other.list_all()) == ["GP-0001", "GP-0002"]
    assert other.get_by_id(first.id).created_at == first.created_at


@pytest.mark.parametrize("text", ['{"id": "inv_1"}', "not json", '[{"id": "inv_1"}]'])
def test_bad_backup_leaves_store_unchanged(store, text):
    store.create(payload())
    with pytest.raises(InvalidBackup):
        store.import_json(text)
    assert [r.invoice_number for r in store.list_all()] == ["GP-0001"]


def test_non_array_backup_message(store):
    with pytest.raises(InvalidBackup, match="expected an array"):
        store.import_json('{"invoices": []}')


def test_clear_empties_store(store):
    store.create(payload())
    store.clear()
    assert store.list_all() == []
    assert store.export_json() == "[]"


# Cache

def test_disk_cache_persists_across_instances(tmp_path):
    directory = tmp_path / "cache"
    cache = DiskCache(directory)
    cache.set_int("seq", 12)
    cache.set_json("rows", [{"id": "a"}])
    cache.close()

    reopened = DiskCache(directory)
    assert reopened.get_int("seq") == 12
    assert reopened.get_json("rows") == [{"id": "a"}]
    reopened.remove("rows")
    assert reopened.get_json("rows") is None
    reopened.close()


def test_disk_cache_enforces_quota(tmp_path):
    cache = DiskCache(tmp_path / "cache", quota_bytes=40)
    cache.set_int("seq", 1)
    with pytest.raises(QuotaExceeded):
        cache.set_json("big", "x" * 100)
    assert cache.get_int("seq") == 1
    assert cache.get_json("big") is None
    cache.close()


def test_disk_cache_backs_local_store(tmp_path):
    cache = DiskCache(tmp_path / "cache")
    LocalInvoiceStore(cache).create(payload())
    assert LocalInvoiceStore(cache).list_all()[0].invoice_number == "GP-0001"
    assert len(cache.get_json(INVOICES_KEY)) == 1
    cache.close()


def test_cache_reads_are_copies():
    cache = LocalCache()
    cache.set_json("rows", [1])
    cache.get_json("rows").append(2)
    assert cache.get_json("rows") == [1]


def test_cache_quota_leaves_previous_value():
    cache = LocalCache(quota_bytes=40)
    cache.set_int("seq", 1)
    with pytest.raises(QuotaExceeded):
        cache.set_json("big", "x" * 100)
    assert cache.get_int("seq") == 1
    assert cache.get_json("big") is None


# REST store

class FakePostgrest:
    def __init__(self):
        self.rows = []
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        params = dict(request.url.params)
        if request.method == "POST":
            row = json.loads(request.content)[0]
            if any(r["invoice_number"] == row["invoice_number"] for r in self.rows):
                return httpx.Response(409, json={"code": "23505", "message": "duplicate key value violates unique constraint"})
            row = {**row, "id": f"id-{len(self.rows) + 1}", "created_at": f"2024-01-0{len(self.rows) + 1}T00:00:00+00:00"}
            self.rows.append(row)
            return httpx.Response(201, json=[row])
        matching = self.rows
        if "id" in params:
            matching = [r for r in self.rows if f"eq.{r['id']}" == params["id"]]
        if request.method == "GET":
            if params.get("select") == "invoice_number":
                return httpx.Response(200, json=[{"invoice_number": r["invoice_number"]} for r in matching])
            return httpx.Response(200, json=list(reversed(matching)))
        if request.method == "PATCH":
            for r in matching:
                r.update(json.loads(request.content))
            return httpx.Response(200, json=matching)
        if request.method == "DELETE":
            self.rows = [r for r in self.rows if r not in matching]
            return httpx.Response(200, json=matching)
        return httpx.Response(405)


@pytest.fixture
def postgrest():
    return FakePostgrest()


@pytest.fixture
def rest_store(postgrest):
    client = httpx.Client(transport=httpx.MockTransport(postgrest))
    return RestInvoiceStore("https://example.supabase.co/", "anon-key", client=client)


def test_rest_create_sends_wire_record(rest_store, postgrest):
    created = rest_store.create(payload(invoice_for_company=""))
    request = postgrest.requests[0]
    assert request.url.path == "/rest/v1/invoices"
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["Authorization"] == "Bearer anon-key"
    assert request.headers["Prefer"] == "return=representation"
    body = json.loads(request.content)[0]
    assert body["invoice_for_company"] is None
    assert body["template_id"] == 1
    assert created.id == "id-1"


def test_rest_duplicate_is_distinguishable(rest_store):
    rest_store.create(payload())
    with pytest.raises(DuplicateInvoiceNumber) as excinfo:
        rest_store.create(payload())
    assert not isinstance(excinfo.value, StoreError)
    assert excinfo.value.invoice_number == "GP-0001"


def test_rest_get_update_delete(rest_store):
    created = rest_store.create(payload())
    assert rest_store.get_by_id(created.id).invoice_for_name == "Acme"

    updated = rest_store.update(created.id, payload(notes="Paid by card"))
    assert updated.notes == "Paid by card"
    assert updated.updated_at is not None

    rest_store.delete(created.id)
    with pytest.raises(NotFound):
        rest_store.get_by_id(created.id)
    with pytest.raises(NotFound):
        rest_store.update(created.id, payload())
    with pytest.raises(NotFound):
        rest_store.delete(created.id)


def test_rest_list_and_max_sequence(rest_store, postgrest):
    for number in ("GP-0001", "GP-0007", "GP-0003"):
        rest_store.create(payload(number))
    assert [r.invoice_number for r in rest_store.list_all()] == ["GP-0003", "GP-0007", "GP-0001"]
    assert rest_store.find_max_sequence_by_prefix("GP") == 7
    assert postgrest.requests[-1].url.params["invoice_number"] == "ilike.GP-*"


def test_rest_server_error_is_store_error():
    client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(500, json={"message": "boom"})))
    store = RestInvoiceStore("https://example.supabase.co", "key", client=client)
    with pytest.raises(StoreError) as excinfo:
        store.list_all()
    assert excinfo.value.status_code == 500


def test_rest_transport_error_is_store_error():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    store = RestInvoiceStore("https://example.supabase.co", "key", client=httpx.Client(transport=httpx.MockTransport(refuse)))
    with pytest.raises(StoreError):
        store.find_max_sequence_by_prefix("GP")
