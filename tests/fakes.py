"""Stand-ins for the Gmail API used across the test suite."""
import base64
from typing import Dict, List, Optional

from leadmail.gmail.client import MailMessage


def b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


class FakeRequest:
    """Mimics googleapiclient's HttpRequest: `execute()` may fail a few times first."""

    def __init__(self, response: Optional[dict] = None, errors=(), page: int = 0):
        self.response = response or {}
        self.errors = list(errors)
        self.page = page
        self.calls = 0

    def execute(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.response


class FakeMessagesResource:
    def __init__(self, pages: List[List[str]], messages: Dict[str, dict], list_errors=()):
        self.pages = pages
        self.messages = messages
        self.list_errors = list(list_errors)
        self.list_kwargs: List[dict] = []
        self.requests: List[FakeRequest] = []

    def _page_request(self, page: int) -> FakeRequest:
        response = {"messages": [{"id": mid, "threadId": f"t-{mid}"} for mid in self.pages[page]]}
        if page + 1 < len(self.pages):
            response["nextPageToken"] = f"page-{page + 1}"
        request = FakeRequest(response, page=page)
        self.requests.append(request)
        return request

    def list(self, **kwargs):
        self.list_kwargs.append(kwargs)
        request = self._page_request(0)
        request.errors = self.list_errors
        return request

    def list_next(self, previous_request, previous_response):
        if not previous_response.get("nextPageToken"):
            return None
        return self._page_request(previous_request.page + 1)

    def get(self, userId, id, format):
        return FakeRequest(self.messages[id])


class FakeUsersResource:
    def __init__(self, messages: FakeMessagesResource, profile: Optional[dict] = None):
        self._messages = messages
        self._profile = profile or {"emailAddress": "leads@agency.example"}

    def messages(self):
        return self._messages

    def getProfile(self, userId):
        return FakeRequest(self._profile)


class FakeGmailService:
    def __init__(self, pages=None, messages=None, list_errors=(), profile=None):
        self.messages_resource = FakeMessagesResource(pages or [[]], messages or {}, list_errors)
        self._users = FakeUsersResource(self.messages_resource, profile)

    def users(self):
        return self._users


class FakeMailClient:
    """Duck-typed GmailClient serving canned messages, newest first."""

    def __init__(self, messages: Optional[List[MailMessage]] = None, profile_address="leads@agency.example"):
        self.messages: List[MailMessage] = list(messages or [])
        self.profile_address = profile_address
        self.list_calls: List[dict] = []
        self.fetched: List[str] = []
        self.fail_fetch: Dict[str, Exception] = {}
        self.fail_list: Optional[Exception] = None

    def add(self, message: MailMessage) -> None:
        """New mail lands at the top of the inbox."""
        self.messages.insert(0, message)

    def list_candidate_messages(self, sender_emails, since=None, stop_at=None):
        self.list_calls.append({"sender_emails": list(sender_emails), "stop_at": stop_at})
        if self.fail_list is not None:
            raise self.fail_list
        ids = []
        for message in self.messages:
            if stop_at and message.id == stop_at:
                break
            ids.append(message.id)
        return ids

    def fetch_message(self, message_id: str) -> MailMessage:
        self.fetched.append(message_id)
        if message_id in self.fail_fetch:
            raise self.fail_fetch[message_id]
        for message in self.messages:
            if message.id == message_id:
                return message
        raise KeyError(message_id)

    def get_profile_address(self):
        if isinstance(self.profile_address, Exception):
            raise self.profile_address
        return self.profile_address


def mail(message_id: str, body: str, subject: str = "Nueva consulta", sender="avisos@tokkobroker.com") -> MailMessage:
    return MailMessage(
        id=message_id,
        thread_id=f"t-{message_id}",
        subject=subject,
        from_address=sender,
        date=None,
        body=body,
    )
