from __future__ import annotations


def test_project_lifecycle(isolated_client):
    created = isolated_client.post("/v1/projects", json={"project_name": "Portal", "created_by": "ada"})
    assert created.status_code == 200
    project = created.json()["project"]

    listed = isolated_client.get("/v1/projects").json()["projects"]
    fetched = isolated_client.get(f"/v1/projects/{project['id']}").json()["project"]

    assert [p["id"] for p in listed] == [project["id"]]
    assert fetched["created_by"] == "ada"
    assert isolated_client.delete(f"/v1/projects/{project['id']}").json() == {"ok": True}
    assert isolated_client.get(f"/v1/projects/{project['id']}").status_code == 404


def test_missing_project_is_enveloped_404(isolated_client):
    response = isolated_client.get("/v1/projects/404", headers={"X-Trace-Id": "trace-404"})

    assert response.status_code == 404
    error = response.json()["error"]
    assert error["code"] == "E_NOT_FOUND"
    assert error["trace_id"] == "trace-404"
    assert response.headers["X-Trace-Id"] == "trace-404"


def test_project_requires_name(isolated_client):
    response = isolated_client.post("/v1/projects", json={"project_name": "  "})

    assert response.status_code == 422
    assert response.json()["error"]["details"] == {"field": "project_name"}


def test_project_id_must_be_integer(isolated_client):
    response = isolated_client.get("/v1/projects/abc")

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "E_SCHEMA_INVALID"


def test_agreement_registration_and_versions(isolated_client):
    project = isolated_client.post("/v1/projects", json={"project_name": "Portal"}).json()["project"]
    created = isolated_client.post(
        "/v1/agreements",
        json={
            "agreement_name": "Acme NDA",
            "agreement_type": "nda",
            "text_content": "Confidential information stays confidential.",
            "counterparty": "Acme",
            "project_id": project["id"],
        },
    )
    assert created.status_code == 200
    agreement = created.json()["agreement"]
    assert agreement["agreement_type"] == "NDA"
    assert agreement["origin"] == "external"

    versions = isolated_client.get(f"/v1/agreements/{agreement['root_id']}").json()
    listed = isolated_client.get("/v1/agreements").json()["agreements"]

    assert versions["root_id"] == agreement["root_id"]
    assert [v["version_number"] for v in versions["versions"]] == [1]
    assert [a["root_id"] for a in listed] == [agreement["root_id"]]
    assert isolated_client.get("/v1/agreements/unknown").status_code == 404


def test_agreement_type_is_validated(isolated_client):
    response = isolated_client.post(
        "/v1/agreements",
        json={"agreement_name": "X", "agreement_type": "LEASE", "text_content": "..."},
    )

    assert response.status_code == 422
    assert response.json()["error"]["details"] == {"field": "agreement_type"}


def test_agreement_for_unknown_project_is_404(isolated_client):
    response = isolated_client.post(
        "/v1/agreements",
        json={"agreement_name": "X", "agreement_type": "MSA", "text_content": "...", "project_id": 77},
    )

    assert response.status_code == 404


def test_policies_create_and_filter(isolated_client):
    isolated_client.post(
        "/v1/policies",
        json={"policy_type": "rule", "title": "Payment", "content": "Net 30."},
    )
    isolated_client.post(
        "/v1/policies",
        json={"policy_type": "rule", "title": "Acceptance", "content": "10 days.", "agreement_type": "SOW"},
    )

    sow = isolated_client.get("/v1/policies", params={"agreement_type": "SOW"}).json()["policies"]
    nda = isolated_client.get("/v1/policies", params={"agreement_type": "NDA"}).json()["policies"]

    assert {p["title"] for p in sow} == {"Payment", "Acceptance"}
    assert [p["title"] for p in nda] == ["Payment"]


def test_invalid_policy_type_is_rejected(isolated_client):
    response = isolated_client.post(
        "/v1/policies",
        json={"policy_type": "guideline", "title": "x", "content": "y"},
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "E_SCHEMA_INVALID"
