import pytest
import httpx
import logging

from backend.api import app as app_module
from backend.api.app import app
from conftest import AUTH, VALID_CPFS, make_person, seed_persons

BASE_URL = "http://testserver"
PERSONS_URL = "/api/v1/persons"
logger = logging.getLogger("test_persons_api")

pytestmark = pytest.mark.usefixtures("credentials_file")


def _client() -> httpx.AsyncClient:
    # ASGITransport não dispara startup/shutdown: o Mongo em memória vem da fixture fake_db
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url=BASE_URL)


def _payload(cpf=VALID_CPFS[0], **overrides):
    payload = {"name": "Teste Cadastro", "birth_date": "1990-05-17", "cpf": cpf, "email": "teste@example.com"}
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_health_without_auth(fake_db):
    async with _client() as client:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_auth_required(fake_db):
    async with _client() as client:
        response = await client.get(PERSONS_URL)
        logger.info(f"test_auth_required: status={response.status_code}, body={response.text}")
        assert response.status_code == 401
        response = await client.get(PERSONS_URL, auth=("admin", "errada"))
        assert response.status_code == 401


@pytest.mark.asyncio
async def test_root_with_valid_credentials(fake_db):
    async with _client() as client:
        response = await client.get("/", auth=AUTH)
        assert response.status_code == 200


@pytest.mark.asyncio
async def test_create_and_get_person(fake_db):
    async with _client() as client:
        response = await client.post(PERSONS_URL, auth=AUTH, json=_payload(cpf="224.420.014-03"))
        logger.info(f"test_create_and_get_person: status={response.status_code}, body={response.json()}")
        assert response.status_code == 201
        created = response.json()
        assert created["cpf"] == "224.420.014-03"

        response = await client.get(f"{PERSONS_URL}/{created['id']}", auth=AUTH)
        assert response.status_code == 200
        assert response.json()["name"] == "Teste Cadastro"

        response = await client.get(f"{PERSONS_URL}/cpf/22442001403", auth=AUTH)
        assert response.status_code == 200
        assert response.json()["id"] == created["id"]


@pytest.mark.asyncio
async def test_create_person_invalid_cpf(fake_db):
    async with _client() as client:
        response = await client.post(PERSONS_URL, auth=AUTH, json=_payload(cpf="12345678900"))
        assert response.status_code == 422


@pytest.mark.asyncio
async def test_create_person_duplicate_cpf(fake_db):
    async with _client() as client:
        await client.post(PERSONS_URL, auth=AUTH, json=_payload())
        response = await client.post(PERSONS_URL, auth=AUTH, json=_payload(name="Outra Pessoa"))
        assert response.status_code == 409


@pytest.mark.asyncio
async def test_create_person_blank_name(fake_db):
    async with _client() as client:
        response = await client.post(PERSONS_URL, auth=AUTH, json=_payload(name=""))
        assert response.status_code == 400


@pytest.mark.asyncio
async def test_list_persons_pagination(fake_db):
    seed_persons(fake_db, [make_person(i, f"Pessoa {i:02d}", f"{i:011d}") for i in range(1, 16)])
    async with _client() as client:
        response = await client.get(PERSONS_URL, auth=AUTH, params={"page": 3, "page_size": 5})
        assert response.status_code == 200
        data = response.json()
        assert [p["id"] for p in data["items"]] == [11, 12, 13, 14, 15]
        assert data["total"] == 15
        assert data["total_pages"] == 3
        assert data["page"] == 3
        assert data["page_size"] == 5


@pytest.mark.asyncio
async def test_list_persons_filter(fake_db):
    seed_persons(fake_db, [
        make_person(1, "Alice", VALID_CPFS[0], "alice@example.com"),
        make_person(2, "Bob", VALID_CPFS[1], "bob@mail.org"),
        make_person(3, "Charlie", VALID_CPFS[2]),
    ])
    async with _client() as client:
        response = await client.get(PERSONS_URL, auth=AUTH, params={"filter": "bob@"})
        data = response.json()
        assert [p["name"] for p in data["items"]] == ["Bob"]
        assert data["total"] == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("params", [{"page": 0}, {"page_size": 0}, {"page_size": 101}])
async def test_list_persons_rejects_bad_paging(fake_db, params):
    async with _client() as client:
        response = await client.get(PERSONS_URL, auth=AUTH, params=params)
        assert response.status_code == 400


@pytest.mark.asyncio
async def test_check_cpf_with_exclusion(fake_db):
    seed_persons(fake_db, [make_person(1, "Alice", VALID_CPFS[0])])
    async with _client() as client:
        response = await client.get(f"{PERSONS_URL}/check-cpf/224.420.014-03", auth=AUTH)
        assert response.json() == {"exists": True}
        response = await client.get(f"{PERSONS_URL}/check-cpf/{VALID_CPFS[0]}", auth=AUTH, params={"exclude_id": 1})
        assert response.json() == {"exists": False}


@pytest.mark.asyncio
async def test_update_person(fake_db):
    seed_persons(fake_db, [make_person(1, "Alice", VALID_CPFS[0])])
    async with _client() as client:
        response = await client.put(f"{PERSONS_URL}/1", auth=AUTH, json={"nationality": "Brasileira"})
        assert response.status_code == 200
        assert response.json()["nationality"] == "Brasileira"
        response = await client.put(f"{PERSONS_URL}/2", auth=AUTH, json={"name": "Ninguém"})
        assert response.status_code == 404


@pytest.mark.asyncio
async def test_delete_person(fake_db):
    seed_persons(fake_db, [make_person(1, "Alice", VALID_CPFS[0])])
    async with _client() as client:
        del_resp = await client.delete(f"{PERSONS_URL}/1", auth=AUTH)
        assert del_resp.status_code == 204
        assert (await client.get(f"{PERSONS_URL}/1", auth=AUTH)).status_code == 404
        assert (await client.delete(f"{PERSONS_URL}/1", auth=AUTH)).status_code == 404
        listing = (await client.get(PERSONS_URL, auth=AUTH)).json()
        assert listing["total"] == 0


@pytest.mark.asyncio
async def test_validate_cpf_endpoint(fake_db):
    async with _client() as client:
        response = await client.get("/api/v1/cpf/22442001403", auth=AUTH)
        assert response.json() == {"cpf": "22442001403", "valid": True, "formatted": "224.420.014-03"}
        response = await client.get("/api/v1/cpf/11111111111", auth=AUTH)
        assert response.json()["valid"] is False


@pytest.mark.asyncio
@pytest.mark.parametrize("params", [{"page": "abc"}, {"page_size": "dez"}])
async def test_list_persons_non_numeric_paging_is_bad_request(fake_db, params):
    async with _client() as client:
        response = await client.get(PERSONS_URL, auth=AUTH, params=params)
        assert response.status_code == 400
        assert isinstance(response.json()["detail"], list)


@pytest.mark.asyncio
async def test_check_cpf_non_numeric_exclude_id_is_bad_request(fake_db):
    async with _client() as client:
        response = await client.get(f"{PERSONS_URL}/check-cpf/{VALID_CPFS[0]}", auth=AUTH, params={"exclude_id": "x"})
        assert response.status_code == 400


@pytest.mark.asyncio
async def test_unhandled_error_returns_500(fake_db, monkeypatch):
    async def broken_list(*args, **kwargs):
        raise RuntimeError("falha inesperada")

    monkeypatch.setattr(app_module.person_service, "list_persons", broken_list)
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as client:
        response = await client.get(PERSONS_URL, auth=AUTH)
        logger.info(f"test_unhandled_error_returns_500: status={response.status_code}, body={response.text}")
        assert response.status_code == 500
        assert response.json() == {"detail": "Erro interno do servidor"}
