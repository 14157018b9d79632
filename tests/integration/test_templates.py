import pytest
from httpx import AsyncClient
from fastapi import status

from tests.conftest import template_payload

TEMPLATES = "/api/v1/kpi/template"


@pytest.mark.asyncio
class TestTemplates:
    """KPI template endpoints"""

    async def test_create_and_fetch(self, client: AsyncClient, auth_headers):
        response = await client.post(TEMPLATES + "/", json=template_payload(), headers=auth_headers)
        assert response.status_code == status.HTTP_201_CREATED
        template = response.json()
        assert template["total_max_marks"] == 100
        assert [m["name"] for m in template["metrics"]] == ["A", "B"]
        assert template["created_by"] == 1

        response = await client.get(f"{TEMPLATES}/{template['id']}", headers=auth_headers)
        assert response.json()["metrics"][0]["sub_metrics"][0]["key"] == "darj"

    async def test_needs_two_unique_metrics(self, client: AsyncClient, auth_headers):
        single = template_payload(metrics=[{"name": "A", "max_marks": 100}])
        response = await client.post(TEMPLATES + "/", json=single, headers=auth_headers)
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

        duplicated = template_payload(metrics=[{"name": "A", "max_marks": 50}, {"name": "A", "max_marks": 50}])
        response = await client.post(TEMPLATES + "/", json=duplicated, headers=auth_headers)
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    async def test_unit_must_be_percent(self, client: AsyncClient, auth_headers):
        payload = template_payload(metrics=[{"name": "A", "max_marks": 50, "unit": "count"}, {"name": "B", "max_marks": 50}])
        response = await client.post(TEMPLATES + "/", json=payload, headers=auth_headers)
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    async def test_filters(self, client: AsyncClient, auth_headers):
        await client.post(TEMPLATES + "/", json=template_payload(), headers=auth_headers)
        await client.post(TEMPLATES + "/", json=template_payload(name="Weekly", frequency="weekly", role="supervisor"), headers=auth_headers)

        response = await client.get(f"{TEMPLATES}/department/health", headers=auth_headers)
        assert len(response.json()) == 2
        response = await client.get(f"{TEMPLATES}/frequency/weekly", headers=auth_headers)
        assert [t["name"] for t in response.json()] == ["Weekly"]
        response = await client.get(f"{TEMPLATES}/role/health-worker", headers=auth_headers)
        assert len(response.json()) == 1
        response = await client.get(TEMPLATES + "/", params={"role": "supervisor"}, headers=auth_headers)
        assert response.json()["count"] == 1

    async def test_templates_for_employee(self, client: AsyncClient, auth_headers, cohort):
        employee_id = cohort["employees"][0]["id"]
        response = await client.get(f"{TEMPLATES}/employee/{employee_id}", headers=auth_headers)
        assert [t["id"] for t in response.json()] == [cohort["template"]["id"]]

        response = await client.get(f"{TEMPLATES}/employee/9999", headers=auth_headers)
        assert response.status_code == status.HTTP_404_NOT_FOUND

    async def test_form_structure(self, client: AsyncClient, auth_headers):
        payload = template_payload(metrics=[{"name": "Home Visits", "max_marks": 70}, {"name": "B", "max_marks": 30}])
        template = (await client.post(TEMPLATES + "/", json=payload, headers=auth_headers)).json()

        response = await client.get(f"{TEMPLATES}/{template['id']}/form", headers=auth_headers)
        form = response.json()
        assert form["total_max_marks"] == 100
        assert [field["key"] for field in form["fields"]] == ["homevisits", "b"]

    async def test_versions(self, client: AsyncClient, auth_headers):
        template = (await client.post(TEMPLATES + "/", json=template_payload(), headers=auth_headers)).json()
        version = {**template_payload(), "template_id": template["id"], "version": 1}

        response = await client.post(f"{TEMPLATES}/versions", json=version, headers=auth_headers)
        assert response.status_code == status.HTTP_201_CREATED
        response = await client.post(f"{TEMPLATES}/versions", json=version, headers=auth_headers)
        assert response.status_code == status.HTTP_409_CONFLICT

        response = await client.get(f"{TEMPLATES}/{template['id']}/versions", headers=auth_headers)
        assert [v["version"] for v in response.json()] == [1]
        response = await client.get(f"{TEMPLATES}/{template['id']}/versions/1", headers=auth_headers)
        assert response.json()["template_id"] == template["id"]
        response = await client.get(f"{TEMPLATES}/{template['id']}/versions/2", headers=auth_headers)
        assert response.status_code == status.HTTP_404_NOT_FOUND

    async def test_permissions_and_soft_delete(self, client: AsyncClient, auth_headers, officer_headers):
        response = await client.post(TEMPLATES + "/", json=template_payload(), headers=officer_headers)
        assert response.status_code == status.HTTP_403_FORBIDDEN

        template = (await client.post(TEMPLATES + "/", json=template_payload(), headers=auth_headers)).json()
        response = await client.put(f"{TEMPLATES}/{template['id']}", json={"description": "Updated"}, headers=officer_headers)
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["description"] == "Updated"

        response = await client.delete(f"{TEMPLATES}/{template['id']}", headers=auth_headers)
        assert response.status_code == status.HTTP_200_OK
        response = await client.get(f"{TEMPLATES}/{template['id']}", headers=auth_headers)
        assert response.status_code == status.HTTP_404_NOT_FOUND
