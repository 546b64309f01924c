from fastapi.testclient import TestClient


def test_health(test_client: TestClient) -> None:
    response = test_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_backlinks_endpoint(test_client: TestClient) -> None:
    """Test that backlinks are returned with source details."""
    response = test_client.get("/api/notes/py2/backlinks")
    assert response.status_code == 200

    (backlink,) = response.json()
    assert backlink["source"] == "py1"
    assert backlink["source_title"] == "Python Basics"
    assert backlink["kind"] == "reference"
    assert backlink["occurrence_count"] == 1


def test_outgoing_and_broken_links(test_client: TestClient) -> None:
    response = test_client.get("/api/notes/gd1/links")
    assert response.status_code == 200
    assert [edge["target"] for edge in response.json()] == ["gd2"]

    response = test_client.get("/api/notes/gd1/broken-links")
    assert response.status_code == 200
    assert response.json() == []

    response = test_client.get("/api/broken-links")
    assert response.status_code == 200
    assert response.json() == []


def test_unknown_note_returns_404(test_client: TestClient) -> None:
    for url in (
        "/api/notes/missing/backlinks",
        "/api/notes/missing/links",
        "/api/notes/missing/similar",
        "/api/notes/missing/recommendations",
        "/api/similarity?a=missing&b=py1",
    ):
        response = test_client.get(url)
        assert response.status_code == 404, url
        assert response.json()["detail"] == "Note not found"


def test_graph_endpoints(test_client: TestClient) -> None:
    assert test_client.get("/api/orphans").json() == ["gd3", "py3"]

    response = test_client.get("/api/paths?from_id=py1&to_id=py2")
    assert response.status_code == 200
    assert response.json() == [["py1", "py2"]]

    response = test_client.get("/api/paths?from_id=py2&to_id=py1")
    assert response.json() == []

    response = test_client.get("/api/paths?from_id=py2&to_id=py1&undirected=true")
    assert response.json() == [["py2", "py1"]]

    response = test_client.get("/api/paths?from_id=py1&to_id=py2&max_depth=0")
    assert response.status_code == 200
    assert response.json() == []

    response = test_client.get("/api/paths?from_id=py1&to_id=py2&limit=0")
    assert response.json() == []

    response = test_client.get("/api/components")
    assert response.status_code == 200
    assert response.json() == [["gd1", "gd2"], ["py1", "py2"], ["gd3"], ["py3"]]


def test_statistics(test_client: TestClient) -> None:
    response = test_client.get("/api/statistics")

    assert response.status_code == 200
    assert response.json() == {
        "total_notes": 6,
        "total_links": 2,
        "total_broken_links": 0,
        "orphaned_notes": 2,
    }


def test_similarity_endpoints(test_client: TestClient) -> None:
    response = test_client.get("/api/similarity?a=py2&b=py1")
    assert response.status_code == 200
    body = response.json()
    assert (body["a"], body["b"]) == ("py1", "py2")
    assert set(body["components"]) == {"textual", "tag", "link", "structural"}

    response = test_client.get("/api/notes/py1/similar?limit=1")
    assert response.status_code == 200
    (best,) = response.json()
    assert "py1" in (best["a"], best["b"])


def test_clusters_endpoint(test_client: TestClient) -> None:
    response = test_client.get("/api/clusters")

    assert response.status_code == 200
    clusters = response.json()
    assert sorted(sorted(cluster["members"]) for cluster in clusters) == [
        ["gd1", "gd2", "gd3"],
        ["py1", "py2", "py3"],
    ]


def test_recommendations_endpoint(test_client: TestClient) -> None:
    response = test_client.get("/api/notes/py1/recommendations?kind=related")
    assert response.status_code == 200
    assert [r["note_id"] for r in response.json()] == ["py2"]
    assert response.json()[0]["reason"] == "direct_link"

    response = test_client.get("/api/notes/py1/recommendations?limit=3")
    assert response.status_code == 200
    assert len(response.json()) == 3

    response = test_client.get("/api/notes/py1/recommendations?limit=0")
    assert response.status_code == 200
    assert response.json() == []

    response = test_client.get("/api/notes/py1/recommendations?kind=bogus")
    assert response.status_code == 422


def test_gaps_endpoint(test_client: TestClient) -> None:
    response = test_client.get("/api/gaps")

    assert response.status_code == 200
    body = response.json()
    assert len(body["disconnected_components"]) == 3
    assert "conceptual_gaps" in body


def test_search_note_by_title(test_client: TestClient) -> None:
    response = test_client.get("/api/notes/search?title=soil care")
    assert response.status_code == 200
    assert response.json() == {
        "note_id": "gd2",
        "title": "Soil Care",
        "exists": True,
        "url": "/note/gd2",
    }

    response = test_client.get("/api/notes/search?title=Soil Cair")
    body = response.json()
    assert body["exists"] is False
    assert body["note_id"] is None
    assert "Soil Care" in body["suggestions"]


def test_parse_preview(test_client: TestClient) -> None:
    response = test_client.post(
        "/api/parse",
        json={"text": "See [[Garden Pests|pests]] and [[Nowhere]] or [soil](gd2.md)"},
    )

    assert response.status_code == 200
    parsed = response.json()
    assert [p["reference"]["target"] for p in parsed] == ["Garden Pests", "Nowhere", "gd2.md"]
    assert [p["resolved_note_id"] for p in parsed] == ["gd3", None, "gd2"]
    assert parsed[0]["reference"]["alias"] == "pests"
    assert parsed[0]["span"] == [4, 26]
    assert parsed[2]["reference"]["is_markdown"] is True
