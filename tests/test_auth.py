import asyncio

from vertex_rag import auth


class FakeCredentials:
    def __init__(self, valid):
        self.valid = valid
        self.token = "cached-token"
        self.refreshes = 0

    def refresh(self, request):
        self.refreshes += 1
        self.token = "fresh-token"
        self.valid = True


def test_valid_credentials_are_not_refreshed():
    credentials = FakeCredentials(valid=True)

    assert asyncio.run(auth.get_access_token(credentials)) == "cached-token"
    assert credentials.refreshes == 0


def test_expired_credentials_are_refreshed():
    credentials = FakeCredentials(valid=False)

    assert asyncio.run(auth.get_access_token(credentials)) == "fresh-token"
    assert credentials.refreshes == 1


def test_application_default_credentials(monkeypatch):
    credentials = FakeCredentials(valid=True)
    calls = []

    def fake_default(scopes=None):
        calls.append(scopes)
        return credentials, "adc-project"

    monkeypatch.setattr(auth.google.auth, "default", fake_default)

    assert auth.load_credentials() == (credentials, "adc-project")
    assert calls == [[auth.CLOUD_PLATFORM_SCOPE]]


def test_key_file_credentials(monkeypatch):
    class FakeServiceAccount:
        project_id = "key-project"
        service_account_email = "rag@key-project.iam.gserviceaccount.com"

    calls = []

    def fake_from_file(path, scopes=None):
        calls.append((path, scopes))
        return FakeServiceAccount()

    monkeypatch.setattr(auth.service_account.Credentials, "from_service_account_file", fake_from_file)

    credentials, project_id = auth.load_credentials("key.json")

    assert project_id == "key-project"
    assert isinstance(credentials, FakeServiceAccount)
    assert calls == [("key.json", [auth.CLOUD_PLATFORM_SCOPE])]
