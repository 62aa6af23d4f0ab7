import copy
from typing import Any, Dict, List, Optional

import pytest

from tallyflow.clients.tally_client import TallyClient
from tallyflow.exceptions.api_exceptions import RemoteApiError
from tallyflow.services.form_editor_service import FormEditorService


class FakeTallyApi:
    """
    API de Tally en memoria con la misma firma que el callable de request:
    ``await api(method, endpoint, body=None)``.
    """

    def __init__(
        self,
        forms: Optional[List[Dict[str, Any]]] = None,
        questions: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        submissions: Optional[Dict[str, Any]] = None,
    ):
        self.forms = {f["id"]: copy.deepcopy(f) for f in forms or []}
        self.questions = questions or {}
        self.submissions = submissions or {}
        self.calls: List[tuple] = []
        self._touch_after: Dict[str, int] = {}
        self._reads: Dict[str, int] = {}
        self._created = 0

    def touch_after_reads(self, form_id: str, reads: int, updated_at: str = "T2") -> None:
        """Simula una edición concurrente: tras ``reads`` lecturas cambia ``updatedAt``."""
        self._touch_after[form_id] = (reads, updated_at)

    @property
    def writes(self) -> List[tuple]:
        return [c for c in self.calls if c[0] in ("PATCH", "POST")]

    def _form(self, form_id: str) -> Dict[str, Any]:
        if form_id not in self.forms:
            raise RemoteApiError("Not found", status_code=404, endpoint=f"/forms/{form_id}")
        return self.forms[form_id]

    async def __call__(self, method: str, endpoint: str, body: Optional[Dict[str, Any]] = None) -> Any:
        self.calls.append((method, endpoint, copy.deepcopy(body)))
        parts = endpoint.strip("/").split("/")

        if parts == ["forms"]:
            if method == "GET":
                return {"items": [copy.deepcopy(f) for f in self.forms.values()]}
            self._created += 1
            form = {"id": f"created-{self._created}", "updatedAt": "T0", **copy.deepcopy(body)}
            self.forms[form["id"]] = form
            return copy.deepcopy(form)

        form_id = parts[1]
        if len(parts) == 3 and parts[2] == "questions":
            return copy.deepcopy(self.questions.get(form_id, []))
        if len(parts) == 3 and parts[2] == "submissions":
            return copy.deepcopy(self.submissions.get(form_id, []))

        form = self._form(form_id)
        if method == "GET":
            self._reads[form_id] = self._reads.get(form_id, 0) + 1
            touch = self._touch_after.get(form_id)
            if touch and self._reads[form_id] > touch[0]:
                form["updatedAt"] = touch[1]
            return copy.deepcopy(form)
        if method == "PATCH":
            form.update(copy.deepcopy(body))
            form["updatedAt"] = f"{form.get('updatedAt')}+1"
            return copy.deepcopy(form)
        raise RemoteApiError(f"Unsupported {method}", status_code=405, endpoint=endpoint)


def make_blocks() -> List[Dict[str, Any]]:
    return [
        {
            "uuid": "t1", "type": "TITLE", "label": "", "groupUuid": "g-t1", "groupType": "QUESTION",
            "payload": {"safeHTMLSchema": [["Your name"]]},
        },
        {
            "uuid": "q1", "type": "INPUT_TEXT", "label": "Name", "groupUuid": "g1", "groupType": "INPUT_TEXT",
            "payload": {"isRequired": True, "placeholder": "Jane"}, "x-extra": {"keep": "me"},
        },
        {
            "uuid": "t2", "type": "TITLE", "label": "", "groupUuid": "g-t2", "groupType": "QUESTION",
            "payload": {"safeHTMLSchema": [["Favourite colour"]]},
        },
        {
            "uuid": "o1", "type": "MULTIPLE_CHOICE_OPTION", "label": "Red", "groupUuid": "g2",
            "groupType": "MULTIPLE_CHOICE", "payload": {"index": 0, "text": "Red"},
        },
        {
            "uuid": "o2", "type": "MULTIPLE_CHOICE_OPTION", "label": "Blue", "groupUuid": "g2",
            "groupType": "MULTIPLE_CHOICE", "payload": {"index": 1, "text": "Blue"},
        },
    ]


@pytest.fixture
def blocks() -> List[Dict[str, Any]]:
    return make_blocks()


@pytest.fixture
def fake_api() -> FakeTallyApi:
    return FakeTallyApi(
        forms=[
            {"id": "form-1", "name": "Signup", "settings": {"language": "en"}, "updatedAt": "T1", "blocks": make_blocks()},
            {
                "id": "form-2", "name": "Target", "settings": {}, "updatedAt": "D1",
                "blocks": [
                    {"uuid": "d1", "type": "INPUT_EMAIL", "label": "Email", "groupUuid": "gd1", "groupType": "INPUT_EMAIL"},
                    {"uuid": "d2", "type": "TEXTAREA", "label": "Notes", "groupUuid": "gd2", "groupType": "TEXTAREA"},
                ],
            },
        ],
        questions={
            "form-1": [
                {"id": "question-a", "blockUuid": "q1", "title": "Name", "type": "INPUT_TEXT"},
                {"id": "question-b", "blockUuid": "o1", "title": "Favourite colour", "type": "MULTIPLE_CHOICE"},
            ],
        },
    )


@pytest.fixture
def service(fake_api: FakeTallyApi) -> FormEditorService:
    return FormEditorService(TallyClient(fake_api))
