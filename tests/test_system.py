def test_health_reports_configured_collaborators(test_client):
    r = test_client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert data["version"] == "0.1.0"
    assert data["completion"] == "endpoint"
    assert data["extraction"] == "endpoint"


def test_version(test_client):
    r = test_client.get("/version")
    assert r.status_code == 200
    data = r.json()
    assert data["name"] == "StudyBuddy API (tests)"
    assert data["env"] == "test"


def test_root_redirects_to_docs(test_client):
    r = test_client.get("/", follow_redirects=False)
    assert r.status_code in (301, 302, 307, 308)
    assert "/docs" in r.headers.get("location", "")


def test_cors_origins_are_split_and_default_to_wildcard():
    from studybuddy.core.config import Settings

    assert Settings(CORS_ORIGINS=" http://a.test, ,http://b.test").cors_origins == [
        "http://a.test", "http://b.test",
    ]
    assert Settings(CORS_ORIGINS="").cors_origins == ["*"]
