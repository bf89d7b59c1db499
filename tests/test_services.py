import pytest

from klserver.app import Config, Handlers
from klserver.models import Error, Limits, Service
from klserver.services import (
    service_add,
    service_delete,
    service_edit,
    service_get,
    service_list,
)
from klserver.store import KuberlogicService, NotFoundError, ObjectMeta, ServiceStore


def make_handlers(*services):
    return Handlers(
        config=Config(domain="kuberlogic.local"),
        services=ServiceStore(services),
    )


def kls(name, labels=None, **kwargs):
    return KuberlogicService(meta=ObjectMeta(name=name, labels=labels or {}), **kwargs)


# service add


def test_add_minimal():
    h = make_handlers()
    resp = service_add(h, Service(id="simple", replicas=1, type="postgresql"))
    assert resp.status == 201
    assert resp.payload == Service(
        id="simple", replicas=1, type="postgresql", domain="simple.kuberlogic.local"
    )


def test_add_all_fields():
    h = make_handlers()
    advanced = {"one": "1", "two": 2.0, "free": {"bool": True}}
    item = Service(
        id="simple",
        replicas=1,
        type="postgresql",
        version="13",
        backup_schedule="7 * * * *",
        domain="my-custom-domain.com",
        limits=Limits(cpu="250m", memory="128Mi", storage="2Gi"),
        insecure=True,
        advanced=advanced,
        subscription="some-kind-of-subscription-id",
    )
    resp = service_add(h, item)
    assert resp.status == 201
    assert resp.payload == Service(
        id="simple",
        replicas=1,
        version="13",
        type="postgresql",
        domain="my-custom-domain.com",
        backup_schedule="7 * * * *",
        limits=Limits(cpu="250m", memory="128Mi", storage="2Gi"),
        insecure=True,
        advanced={"one": "1", "two": 2.0, "free": {"bool": True}},
        subscription="some-kind-of-subscription-id",
    )


def test_add_subscription_already_exists():
    h = make_handlers(
        kls("existing", {"subscription-id": "already-exists"}, type="postgresql")
    )
    resp = service_add(
        h,
        Service(id="new-service", replicas=1, type="postgresql", subscription="already-exists"),
    )
    assert resp.status == 400
    assert resp.payload == Error("service with subscription 'already-exists' already exist")


def test_add_converting_error():
    h = make_handlers()
    resp = service_add(
        h,
        Service(
            id="simple",
            replicas=1,
            type="postgresql",
            subscription="already-exists",
            advanced={"key": lambda: None},
        ),
    )
    assert resp.status == 400
    assert resp.payload.message.startswith("cannot deserialize advanced parameter:")


def test_add_already_exists():
    h = make_handlers(kls("simple", type="postgresql"))
    resp = service_add(h, Service(id="simple", replicas=1, type="postgresql"))
    assert resp.status == 409


# service delete


def test_delete_ok():
    h = make_handlers(kls("service", type="postgresql", replicas=1))
    resp = service_delete(h, "service")
    assert resp.status == 200
    with pytest.raises(NotFoundError):
        h.services.get("service")


def test_delete_not_found():
    h = make_handlers(kls("other-service", type="postgresql", replicas=1))
    resp = service_delete(h, "service")
    assert resp.status == 404
    assert resp.payload == Error("kuberlogic service not found: service")
    assert [s.name for s in h.services.list()] == ["other-service"]


# service edit


def test_edit_ok():
    h = make_handlers(kls("one", type="postgresql", replicas=1))
    resp = service_edit(h, "one", Service(id="one", type="postgresql", replicas=2))
    assert resp.status == 200
    assert h.services.get("one").replicas == 2


def test_edit_subscription_cannot_be_changed():
    h = make_handlers(kls("one", type="postgresql", replicas=1))
    resp = service_edit(
        h,
        "one",
        Service(id="one", type="postgresql", replicas=2, subscription="new-subscription"),
    )
    assert resp.status == 400
    assert resp.payload == Error("subscription cannot be changed")
    assert h.services.get("one").replicas == 1


def test_edit_converting_error():
    h = make_handlers(kls("broken-advanced-field", type="postgresql", replicas=1))
    resp = service_edit(
        h,
        "broken-advanced-field",
        Service(
            id="broken-advanced-field",
            type="postgresql",
            replicas=2,
            advanced={"key": lambda: None},
        ),
    )
    assert resp.status == 400
    assert resp.payload.message.startswith("cannot deserialize advanced parameter:")


def test_edit_not_found():
    h = make_handlers()
    resp = service_edit(
        h, "not-found-id", Service(id="not-found-id", type="postgresql", replicas=2)
    )
    assert resp.status == 404
    assert resp.payload == Error("kuberlogic service not found: not-found-id")


# service get


def test_get_ok():
    h = make_handlers(
        kls("one", type="postgresql", replicas=1, limits={"storage": "2Gi"}, phase="Unknown")
    )
    resp = service_get(h, "one")
    assert resp.status == 200
    assert resp.payload == Service(
        id="one",
        type="postgresql",
        replicas=1,
        limits=Limits(storage="2Gi"),
        status="Unknown",
    )


def test_get_not_found():
    h = make_handlers()
    resp = service_get(h, "one")
    assert resp.status == 404
    assert resp.payload == Error("kuberlogic service not found: one")


def test_get_converting_error():
    h = make_handlers(
        kls(
            "one",
            type="postgresql",
            replicas=1,
            limits={"storage": "2Gi"},
            advanced='{"some": "invalid-json")}',
            phase="Unknown",
        )
    )
    resp = service_get(h, "one")
    assert resp.status == 503
    assert resp.payload.message.startswith("error converting kuberlogicservice: ")


# service list


def test_list_one_service():
    h = make_handlers(
        kls(
            "one",
            {"subscription-id": "some-kind-of-subscription-id"},
            type="postgresql",
            replicas=1,
            domain="example.com",
            phase="Running",
        )
    )
    resp = service_list(h)
    assert resp.status == 200
    assert resp.payload == [
        Service(
            id="one",
            type="postgresql",
            replicas=1,
            status="Running",
            subscription="some-kind-of-subscription-id",
            domain="example.com",
        )
    ]


def test_list_no_services():
    resp = service_list(make_handlers())
    assert resp.status == 200
    assert resp.payload == []


def test_list_many_services():
    h = make_handlers(
        kls("one", type="postgresql", replicas=1, domain="example.com", phase="Running"),
        kls("two", type="mysql", replicas=2, domain="example.com", phase="Failed"),
    )
    resp = service_list(h)
    assert resp.status == 200
    assert resp.payload == [
        Service(id="one", type="postgresql", replicas=1, status="Running", domain="example.com"),
        Service(id="two", type="mysql", replicas=2, status="Failed", domain="example.com"),
    ]


def test_list_with_subscription_id():
    h = make_handlers(
        kls(
            "one",
            {"subscription-id": "some-kind-of-subscription-id"},
            type="postgresql",
            replicas=1,
            domain="example.com",
            phase="Running",
        ),
        kls(
            "two",
            {"subscription-id": "some-other-kind-of-subscription-id"},
            type="mysql",
            replicas=2,
            domain="kuberlogic.com",
            phase="Failing",
        ),
    )
    resp = service_list(h, "some-kind-of-subscription-id")
    assert resp.status == 200
    assert resp.payload == [
        Service(
            id="one",
            type="postgresql",
            replicas=1,
            status="Running",
            subscription="some-kind-of-subscription-id",
            domain="example.com",
        )
    ]


def test_list_convert_error():
    h = make_handlers(
        kls(
            "one",
            {"subscription-id": "some-kind-of-subscription-id"},
            type="postgresql",
            replicas=1,
            domain="example.com",
            advanced='{"some": "invalid-json")}',
            phase="Running",
        )
    )
    resp = service_list(h)
    assert resp.status == 503
    assert resp.payload == Error("error converting service object")