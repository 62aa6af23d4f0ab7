from tallyflow.utils.submission_transforms import flatten_submission, sanitize_field_name


def test_sanitize_field_name():
    assert sanitize_field_name("What's your  E-mail?") == "whats_your_email"


def test_flatten_prefers_form_labels_then_question_then_field_id():
    submission = {
        "id": "sub-1",
        "createdAt": "2024-05-01T10:00:00Z",
        "answers": [
            {"fieldId": "f1", "value": "Ana"},
            {"fieldId": "f2", "question": "Favourite colour", "value": "Red"},
            {"fieldId": "f3", "value": 42},
            {"value": "orphan"},
        ],
    }
    form = {"fields": [{"id": "f1", "label": "First name"}, {"id": "f9"}]}

    flattened = flatten_submission(submission, form)

    assert flattened["submissionId"] == "sub-1"
    assert flattened["createdAt"] == "2024-05-01T10:00:00Z"
    assert flattened["answers"] == {
        "first_name": "Ana",
        "favourite_colour": "Red",
        "f3": 42,
        "field_3": "orphan",
    }
    assert flattened["_raw"] is submission


def test_flatten_without_answers():
    flattened = flatten_submission({"id": "empty"})
    assert flattened["answers"] == {}
    assert flattened["createdAt"] is None
