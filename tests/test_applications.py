import pytest

from permits import applications
from permits.models import OverallStatus, RequirementFileStatus, RequirementState

business_application = {
    "form": {
        "applicantUid": "  citizen-1 ",
        "firstName": "Maria",
        "middleName": "Santos",
        "lastName": "Cruz",
        "businessName": "Cruz Sari-Sari Store",
        "applicationType": "Renewal",
        "dateOfApplication": "2025-01-15",
    },
    "meta": {"overallStatus": "Draft", "updatedAt": 1_700_000_000_000},
    "requirements": {
        "DTI Registration": {
            "files": {
                "f2": {"status": "approved", "uploadedAt": 300, "fileName": "b.pdf"},
                "f1": {"status": "approved", "uploadedAt": 100, "fileName": "a.pdf"},
            },
            "chat": {
                "m2": {"senderRole": "admin", "text": "Thanks", "ts": 20},
                "m1": {"senderRole": "citizen", "text": "Uploaded", "ts": 10},
            },
        },
        "Barangay Clearance": {"files": {"f3": {"status": "Approved", "uploadedAt": 200}}},
    },
}


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (None, RequirementFileStatus.PENDING),
        ("", RequirementFileStatus.PENDING),
        ("Pending review", RequirementFileStatus.PENDING),
        ("updated", RequirementFileStatus.UPDATED),
        ("REJECTED", RequirementFileStatus.REJECTED),
        ("approved", RequirementFileStatus.APPROVED),
        ("not approved", RequirementFileStatus.APPROVED),
        ("archived", None),
    ],
)
def test_file_status_from_legacy(value, expected):
    assert RequirementFileStatus.from_legacy(value) == expected


def test_normalize_business_application():
    record = applications.normalize_business_application("app-1", business_application)

    assert record.applicant_uid == "citizen-1"
    assert record.applicant_name == "Maria Santos Cruz"
    assert record.application_type == "Renewal"
    assert record.overall_status == OverallStatus.APPROVED
    assert record.submitted_at == 1_736_899_200_000
    # The latest upload of an approved file.
    assert record.approved_at == 300
    assert [requirement.id for requirement in record.requirements] == ["dti-registration-0", "barangay-clearance-1"]

    requirement = record.requirements[0]
    assert requirement.state == RequirementState.APPROVED
    assert [file.id for file in requirement.files] == ["f1", "f2"]
    assert [message.text for message in requirement.chat] == ["Uploaded", "Thanks"]


def test_normalize_business_application_malformed():
    record = applications.normalize_business_application("app-1", "not an application")

    assert record.applicant_uid is None
    assert record.applicant_name == applications.UNNAMED_APPLICANT
    assert record.application_type == "New"
    assert record.overall_status == ""
    assert record.submitted_at is None
    assert record.requirements == []


def test_applicant_name_falls_back_to_business_name():
    record = applications.normalize_business_application("app-1", {"form": {"businessName": "Acme"}})

    assert record.applicant_name == "Acme"


@pytest.mark.parametrize(
    ("statuses", "expected"),
    [
        (["approved", "pending"], OverallStatus.PENDING_REVIEW),
        (["approved", "updated"], OverallStatus.PENDING_REVIEW),
        (["approved", "rejected"], OverallStatus.INCOMPLETE),
        (["approved", ""], OverallStatus.PENDING_REVIEW),
        (["approved", "approved"], OverallStatus.APPROVED),
    ],
)
def test_overall_status(statuses, expected):
    payload = {
        "meta": {"overallStatus": "Draft"},
        "requirements": {
            f"Requirement {i}": {"files": {"f": {"status": status}}} for i, status in enumerate(statuses)
        },
    }

    assert applications.normalize_business_application("app-1", payload).overall_status == expected


def test_overall_status_without_requirements():
    record = applications.normalize_business_application("app-1", {"meta": {"overallStatus": "Draft"}})

    assert record.overall_status == "Draft"


def test_requirement_without_files_is_pending():
    record = applications.normalize_business_application("app-1", {"requirements": {"Photo": {}}})

    assert record.requirements[0].state == RequirementState.PENDING
    assert record.overall_status == OverallStatus.PENDING_REVIEW


def test_unrecognized_file_status_is_ignored():
    payload = {"requirements": {"Photo": {"files": {"a": {"status": "archived"}, "b": {"status": "rejected"}}}}}

    assert applications.normalize_business_application("app-1", payload).requirements[0].state == "rejected"


def test_stored_approval_time_wins():
    payload = {**business_application, "meta": {"approvedOn": "2025-02-01T00:00:00Z"}}

    assert applications.normalize_business_application("app-1", payload).approved_at == 1_738_368_000_000


def test_approval_time_falls_back_to_meta_update():
    payload = {"meta": {"updatedAt": 42}, "requirements": {"Photo": {"files": {"a": {"status": "approved"}}}}}

    assert applications.normalize_business_application("app-1", payload).approved_at == 42


def test_pending_application_has_no_approval_time():
    payload = {"meta": {"updatedAt": 42}, "requirements": {"Photo": {"files": {"a": {"status": "pending"}}}}}

    assert applications.normalize_business_application("app-1", payload).approved_at is None


def test_requirement_notification_id():
    record = applications.normalize_business_application("app-1", business_application)

    assert applications.requirement_notification_id(record) == "requirements-app-1-300"


def test_requirement_notification_id_without_uploads():
    record = applications.normalize_business_application("app-1", {"requirements": {"Photo": {}}})

    assert applications.requirement_notification_id(record) is None


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (None, "Pending"),
        ("", "Pending"),
        ("pending_review", "Pending Review"),
        ("in-progress", "In Progress"),
        ("approved", "Approved"),
    ],
)
def test_format_status_label(value, expected):
    assert applications.format_status_label(value) == expected


@pytest.mark.parametrize(("value", "expected"), [(2048, 2048), ("2 MB", "2 MB"), (None, 0), ({"bytes": 1}, 0)])
def test_file_size(value, expected):
    [file] = applications.normalize_requirement_files({"f1": {"fileSize": value}})

    assert file.file_size == expected
