"""Helpers shared by the API tests."""

from storefront.whatsapp import SendResult

TEST_VERIFY_TOKEN = "verify-me"


class FakeWhatsApp:
    """Records calls instead of reaching the WhatsApp API."""

    def __init__(self):
        self.sent = []
        self.read = []
        self.result = SendResult(success=True, message_id="wamid.TEST1")

    async def send(self, to, text):
        self.sent.append((to, text))
        return self.result

    async def mark_as_read(self, message_id):
        self.read.append(message_id)
        return True


def register(client, email="alice@example.com", password="secret123", name="Alice"):
    body = {"email": email, "password": password}
    if name is not None:
        body["name"] = name
    return client.post("/api/auth/register", json=body)


def login(client, email="alice@example.com", password="secret123"):
    return client.post("/api/auth/login", json={"email": email, "password": password})
