import pytest

from app.core.errors import ErrorCode, PolicyError
from app.models.dispatch import DispatchRequest, DispatchStatus, DISPATCHES_COLLECTION
from app.models.report import ReportStatus
from app.services.dispatch_tracker import DispatchAssignmentTracker
from app.store.base import StoreError


def _error_code(fn, *args, **kwargs) -> ErrorCode:
    with pytest.raises(PolicyError) as exc_info:
        fn(*args, **kwargs)
    return exc_info.value.code


def _request(responder_id="X", priority="high", notes=None) -> DispatchRequest:
    return DispatchRequest(responder_id=responder_id, priority=priority, notes=notes)


def test_controller_dispatches_pending_report(report_service, people, new_report):
    report = new_report()

    record = report_service.assign_dispatch(people["K"], report.id, _request())

    assert record.status == DispatchStatus.PENDING
    assert record.report_id == report.id
    assert record.assigned_to == "X"
    assert record.priority.value == "high"
    assert record.dispatched_by == "K"

    updated = report_service.get_report(report.id)
    assert updated.status == ReportStatus.DISPATCHED
    assert updated.company_id == "C1"
    assert updated.assigned_responder_id == "X"
    assert [(e["from"], e["to"]) for e in updated.status_history] == [
        ("pending", "active"),
        ("active", "dispatched"),
    ]
    assert len(report_service.list_dispatches(report.id)) == 1


def test_second_assignment_is_already_dispatched(report_service, people, new_report):
    report = new_report()
    report_service.assign_dispatch(people["K"], report.id, _request())

    assert _error_code(report_service.assign_dispatch, people["K"], report.id, _request("X2")) == ErrorCode.ALREADY_DISPATCHED
    assert len(report_service.list_dispatches(report.id)) == 1


def test_assignment_allowed_again_once_previous_dispatch_completed(report_service, people, new_report):
    report = new_report()
    record = report_service.assign_dispatch(people["K"], report.id, _request())
    for status in ("dispatched", "en_route", "on_scene", "completed"):
        record = report_service.update_dispatch_status(people["X"], record.id, status)

    second = report_service.assign_dispatch(people["K"], report.id, _request("X2"))
    assert second.status == DispatchStatus.PENDING
    assert report_service.get_report(report.id).assigned_responder_id == "X2"


def test_closed_report_cannot_be_dispatched(report_service, people, new_report):
    report = report_service.transition_report(people["M"], new_report().id, "rejected")
    assert _error_code(report_service.assign_dispatch, people["K"], report.id, _request()) == ErrorCode.REPORT_CLOSED


def test_dispatch_status_is_strictly_linear(report_service, people, new_report):
    record = report_service.assign_dispatch(people["K"], new_report().id, _request())

    assert _error_code(report_service.update_dispatch_status, people["X"], record.id, "on_scene") == ErrorCode.INVALID_TRANSITION
    assert _error_code(report_service.update_dispatch_status, people["X"], record.id, "completed") == ErrorCode.INVALID_TRANSITION

    record = report_service.update_dispatch_status(people["X"], record.id, "dispatched")
    assert record.status == DispatchStatus.DISPATCHED
    assert _error_code(report_service.update_dispatch_status, people["X"], record.id, "pending") == ErrorCode.INVALID_TRANSITION


def test_same_dispatch_status_is_a_noop(report_service, people, new_report):
    record = report_service.assign_dispatch(people["K"], new_report().id, _request())
    again = report_service.update_dispatch_status(people["X"], record.id, "pending")
    assert again.status == DispatchStatus.PENDING
    assert again.updated_at == record.updated_at


def test_completing_dispatch_leaves_report_status_alone(report_service, people, new_report):
    report = new_report()
    record = report_service.assign_dispatch(people["K"], report.id, _request())
    for status in ("dispatched", "en_route", "on_scene", "completed"):
        record = report_service.update_dispatch_status(people["X"], record.id, status)

    assert record.status == DispatchStatus.COMPLETED
    assert report_service.get_report(report.id).status == ReportStatus.DISPATCHED


def test_reassign_supersedes_active_dispatch(report_service, people, new_report):
    report = new_report()
    first = report_service.assign_dispatch(people["K"], report.id, _request())

    second = report_service.reassign_dispatch(people["K"], report.id, _request("X2", priority="critical"))

    records = {r.id: r for r in report_service.list_dispatches(report.id)}
    assert records[first.id].status == DispatchStatus.COMPLETED
    assert records[second.id].status == DispatchStatus.PENDING
    assert [r for r in records.values() if r.is_active] == [records[second.id]]
    assert report_service.get_report(report.id).assigned_responder_id == "X2"


def test_only_reassign_moves_report_to_another_company(report_service, people, new_report):
    report = new_report()
    report_service.assign_dispatch(people["G"], report.id, _request("X"))

    # Plain assignment to another company's responder is refused
    record = report_service.dispatch.get_active_dispatch(report.id)
    for status in ("dispatched", "en_route", "on_scene", "completed"):
        report_service.update_dispatch_status(people["X"], record.id, status)
    assert _error_code(report_service.assign_dispatch, people["G"], report.id, _request("Y")) == ErrorCode.CROSS_COMPANY

    report_service.reassign_dispatch(people["G"], report.id, _request("Y"))
    moved = report_service.get_report(report.id)
    assert moved.company_id == "C2"
    assert moved.assigned_responder_id == "Y"


def test_company_actor_cannot_dispatch_other_company_responder(report_service, people, new_report):
    report = new_report()
    assert _error_code(report_service.assign_dispatch, people["K"], report.id, _request("Y")) == ErrorCode.CROSS_COMPANY
    assert report_service.get_report(report.id).status == ReportStatus.PENDING


def test_responders_cannot_dispatch(report_service, people, new_report):
    assert _error_code(report_service.assign_dispatch, people["X"], new_report().id, _request()) == ErrorCode.INSUFFICIENT_RANK


def test_other_responder_cannot_advance_dispatch(report_service, people, new_report):
    record = report_service.assign_dispatch(people["K"], new_report().id, _request("X"))
    assert _error_code(report_service.update_dispatch_status, people["X2"], record.id, "dispatched") == ErrorCode.INSUFFICIENT_RANK


def test_dispatch_target_must_be_an_active_responder(report_service, people, new_report):
    report = new_report()
    assert _error_code(report_service.assign_dispatch, people["K"], report.id, _request("M")) == ErrorCode.VALIDATION_ERROR
    assert _error_code(report_service.assign_dispatch, people["K"], report.id, _request("ghost")) == ErrorCode.NOT_FOUND
    assert _error_code(report_service.assign_dispatch, people["K"], report.id, _request(priority="urgent")) == ErrorCode.VALIDATION_ERROR


def test_dispatch_is_audited(report_service, audit, people, new_report):
    record = report_service.assign_dispatch(people["K"], new_report().id, _request())
    events = audit.events_for_target(record.id)
    assert [e.action for e in events] == ["create_dispatch"]
    assert events[0].details["assigned_to"] == "X"


def test_is_valid_transition():
    assert DispatchAssignmentTracker.is_valid_transition(DispatchStatus.PENDING, DispatchStatus.DISPATCHED)
    assert DispatchAssignmentTracker.is_valid_transition(DispatchStatus.ON_SCENE, DispatchStatus.ON_SCENE)
    assert not DispatchAssignmentTracker.is_valid_transition(DispatchStatus.PENDING, DispatchStatus.ON_SCENE)
    assert not DispatchAssignmentTracker.is_valid_transition(DispatchStatus.COMPLETED, DispatchStatus.PENDING)


def test_assign_racing_another_assign_gets_conflict(store, report_service, people, new_report, monkeypatch):
    report = new_report()
    create = store.create
    rival = {}

    def create_with_rival(collection, data, record_id=None):
        # A second controller dispatches between the report claim and the record insert
        if collection == DISPATCHES_COLLECTION and not rival:
            rival["code"] = None
            try:
                report_service.assign_dispatch(people["M"], report.id, _request("X2"))
            except PolicyError as e:
                rival["code"] = e.code
        return create(collection, data, record_id=record_id)

    monkeypatch.setattr(store, "create", create_with_rival)

    record = report_service.assign_dispatch(people["K"], report.id, _request("X"))

    assert rival["code"] == ErrorCode.CONFLICT
    active = [r for r in report_service.list_dispatches(report.id) if r.is_active]
    assert [r.id for r in active] == [record.id]
    assert report_service.get_report(report.id).active_dispatch_id == record.id


def test_stale_snapshot_assign_gets_conflict(report_service, people, new_report):
    snapshot = new_report()
    first = report_service.dispatch.assign(snapshot, "X", "high", None, people["K"])

    assert _error_code(report_service.dispatch.assign, snapshot, "X2", "high", None, people["M"]) == ErrorCode.CONFLICT
    active = [r for r in report_service.list_dispatches(snapshot.id) if r.is_active]
    assert [r.id for r in active] == [first.id]


def test_failed_record_insert_restores_report(store, report_service, audit, people, new_report, monkeypatch):
    report = new_report()
    create = store.create

    def failing_create(collection, data, record_id=None):
        if collection == DISPATCHES_COLLECTION:
            raise StoreError("dispatch_records unavailable")
        return create(collection, data, record_id=record_id)

    monkeypatch.setattr(store, "create", failing_create)
    with pytest.raises(StoreError):
        report_service.assign_dispatch(people["K"], report.id, _request())

    restored = report_service.get_report(report.id)
    assert restored.status == ReportStatus.PENDING
    assert restored.status_history == []
    assert restored.assigned_responder_id is None
    assert restored.company_id is None
    assert restored.active_dispatch_id is None
    assert report_service.list_dispatches(report.id) == []
    assert [e.action for e in audit.events_for_target(report.id)] == ["create_report"]

    monkeypatch.setattr(store, "create", create)
    record = report_service.assign_dispatch(people["K"], report.id, _request())
    assert report_service.get_report(report.id).active_dispatch_id == record.id


def test_failed_reassign_leaves_no_active_dispatch(store, report_service, people, new_report, monkeypatch):
    report = new_report()
    first = report_service.assign_dispatch(people["K"], report.id, _request("X"))
    create = store.create

    def failing_create(collection, data, record_id=None):
        if collection == DISPATCHES_COLLECTION:
            raise StoreError("dispatch_records unavailable")
        return create(collection, data, record_id=record_id)

    monkeypatch.setattr(store, "create", failing_create)
    with pytest.raises(StoreError):
        report_service.reassign_dispatch(people["K"], report.id, _request("X2"))

    assert [r.is_active for r in report_service.list_dispatches(report.id)] == [False]
    current = report_service.get_report(report.id)
    assert current.assigned_responder_id == "X"
    assert current.active_dispatch_id == first.id

    # The stale claim on a completed record does not block the next assignment
    monkeypatch.setattr(store, "create", create)
    second = report_service.assign_dispatch(people["K"], report.id, _request("X2"))
    assert [r.id for r in report_service.list_dispatches(report.id) if r.is_active] == [second.id]


def test_completion_releases_the_report(report_service, people, new_report):
    report = new_report()
    record = report_service.assign_dispatch(people["K"], report.id, _request())
    assert report_service.get_report(report.id).active_dispatch_id == record.id

    for status in ("dispatched", "en_route", "on_scene", "completed"):
        record = report_service.update_dispatch_status(people["X"], record.id, status)

    assert report_service.get_report(report.id).active_dispatch_id is None
