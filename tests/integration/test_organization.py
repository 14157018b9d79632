import pytest
from httpx import AsyncClient
from fastapi import status

DEPARTMENTS = "/api/v1/organization/department"
EMPLOYEES = "/api/v1/hr/employee"


def employee_payload(**overrides) -> dict:
    payload = {
        "name": "Asha Devi",
        "contact": {"email": "asha@example.com", "phone": "9876543210"},
        "department": "health",
        "department_role": "health-worker",
        "metadata": {"block": "Arang"},
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
class TestDepartments:
    """Department endpoints"""

    async def test_create_and_fetch(self, client: AsyncClient, auth_headers):
        response = await client.post(DEPARTMENTS + "/", json={"name": "Health", "slug": "Health"}, headers=auth_headers)
        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["slug"] == "health"
        assert data["is_active"] is True

        response = await client.get(f"{DEPARTMENTS}/slug/health", headers=auth_headers)
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["id"] == data["id"]

        response = await client.get(DEPARTMENTS + "/", headers=auth_headers)
        assert response.json()["count"] == 1

    async def test_duplicate_slug_rejected(self, client: AsyncClient, auth_headers):
        await client.post(DEPARTMENTS + "/", json={"name": "Health", "slug": "health"}, headers=auth_headers)
        response = await client.post(DEPARTMENTS + "/", json={"name": "Health 2", "slug": "health"}, headers=auth_headers)
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    async def test_invalid_slug(self, client: AsyncClient, auth_headers):
        response = await client.post(DEPARTMENTS + "/", json={"name": "Health", "slug": "he alth!"}, headers=auth_headers)
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    async def test_delete_blocked_by_active_employees(self, client: AsyncClient, auth_headers):
        department = (await client.post(DEPARTMENTS + "/", json={"name": "Health", "slug": "health"}, headers=auth_headers)).json()
        employee = (await client.post(EMPLOYEES + "/", json=employee_payload(), headers=auth_headers)).json()

        response = await client.delete(f"{DEPARTMENTS}/{department['id']}", headers=auth_headers)
        assert response.status_code == status.HTTP_400_BAD_REQUEST

        await client.delete(f"{EMPLOYEES}/{employee['id']}", headers=auth_headers)
        response = await client.delete(f"{DEPARTMENTS}/{department['id']}", headers=auth_headers)
        assert response.status_code == status.HTTP_200_OK

        response = await client.get(f"{DEPARTMENTS}/{department['id']}", headers=auth_headers)
        assert response.status_code == status.HTTP_404_NOT_FOUND

    async def test_officer_cannot_create(self, client: AsyncClient, officer_headers):
        response = await client.post(DEPARTMENTS + "/", json={"name": "Health", "slug": "health"}, headers=officer_headers)
        assert response.status_code == status.HTTP_403_FORBIDDEN

    async def test_token_required(self, client: AsyncClient):
        response = await client.get(DEPARTMENTS + "/")
        assert response.status_code in (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN)

    async def test_invalid_token(self, client: AsyncClient):
        response = await client.get(DEPARTMENTS + "/", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.asyncio
class TestEmployees:
    """Employee endpoints"""

    async def test_create_and_fetch(self, client: AsyncClient, auth_headers):
        await client.post(DEPARTMENTS + "/", json={"name": "Health", "slug": "health"}, headers=auth_headers)

        response = await client.post(EMPLOYEES + "/", json=employee_payload(), headers=auth_headers)
        assert response.status_code == status.HTTP_201_CREATED
        employee = response.json()
        assert employee["contact"] == {"email": "asha@example.com", "phone": "9876543210"}
        assert employee["metadata"] == {"block": "Arang"}

        response = await client.get(f"{EMPLOYEES}/{employee['id']}", headers=auth_headers)
        assert response.json()["name"] == "Asha Devi"

    async def test_unknown_department(self, client: AsyncClient, auth_headers):
        response = await client.post(EMPLOYEES + "/", json=employee_payload(department="nowhere"), headers=auth_headers)
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    async def test_filters(self, client: AsyncClient, auth_headers):
        await client.post(DEPARTMENTS + "/", json={"name": "Health", "slug": "health"}, headers=auth_headers)
        await client.post(EMPLOYEES + "/", json=employee_payload(), headers=auth_headers)
        await client.post(EMPLOYEES + "/", json=employee_payload(name="Ravi Kumar", department_role="supervisor"), headers=auth_headers)

        response = await client.get(f"{EMPLOYEES}/department/health", headers=auth_headers)
        assert len(response.json()) == 2

        response = await client.get(f"{EMPLOYEES}/role/supervisor", headers=auth_headers)
        assert [e["name"] for e in response.json()] == ["Ravi Kumar"]

        response = await client.get(EMPLOYEES + "/", params={"search": "ravi"}, headers=auth_headers)
        assert response.json()["count"] == 1

    async def test_update_and_delete(self, client: AsyncClient, auth_headers, officer_headers):
        await client.post(DEPARTMENTS + "/", json={"name": "Health", "slug": "health"}, headers=auth_headers)
        employee = (await client.post(EMPLOYEES + "/", json=employee_payload(), headers=auth_headers)).json()

        response = await client.put(
            f"{EMPLOYEES}/{employee['id']}",
            json={"contact": {"phone": "9123456780"}},
            headers=officer_headers,
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["contact"]["phone"] == "9123456780"

        response = await client.delete(f"{EMPLOYEES}/{employee['id']}", headers=officer_headers)
        assert response.status_code == status.HTTP_403_FORBIDDEN

        response = await client.delete(f"{EMPLOYEES}/{employee['id']}", headers=auth_headers)
        assert response.status_code == status.HTTP_200_OK
        response = await client.get(f"{EMPLOYEES}/{employee['id']}", headers=auth_headers)
        assert response.status_code == status.HTTP_404_NOT_FOUND
