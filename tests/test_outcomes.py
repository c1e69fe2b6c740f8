from backend.outcomes import OutcomeKind, SimulationOutcome, error_envelope


def test_status_contract_per_kind():
    assert OutcomeKind.AUTH_ERROR.status == 401
    assert OutcomeKind.FORBIDDEN_ERROR.status == 403
    assert OutcomeKind.DEPENDENCY_ERROR.status == 502
    assert OutcomeKind.HANDLED_ERROR.status == 500
    assert OutcomeKind.UNHANDLED_ERROR.status == 500
    for kind in (OutcomeKind.SUCCESS, OutcomeKind.TIMEOUT, OutcomeKind.SLOW, OutcomeKind.RESOURCE_SPIKE):
        assert kind.status == 200
        assert not kind.is_error


def test_kind_labels_are_unique():
    labels = [kind.label for kind in OutcomeKind]
    assert len(labels) == len(set(labels)) == 9


def test_error_outcome_renders_envelope():
    outcome = SimulationOutcome(OutcomeKind.DEPENDENCY_ERROR, "boom", trace_id='a' * 32,
                                error='DependencyFailure', extra={"ignored": True})
    assert outcome.status == 502
    assert outcome.body() == error_envelope('DependencyFailure', "boom", 'a' * 32)


def test_error_label_defaults_to_kind():
    outcome = SimulationOutcome(OutcomeKind.HANDLED_ERROR, "boom")
    assert outcome.body()["error"] == 'handled-error'


def test_success_outcome_merges_extra_fields():
    outcome = SimulationOutcome(OutcomeKind.RESOURCE_SPIKE, "done", trace_id=None,
                                extra={"allocatedMb": 500})
    assert outcome.body() == {"message": "done", "allocatedMb": 500, "traceId": None}


def test_success_without_message_omits_message_key():
    outcome = SimulationOutcome(OutcomeKind.SUCCESS, None, trace_id='a' * 32,
                                extra={"status": "healthy"})
    assert outcome.status == 200
    assert outcome.body() == {"status": "healthy", "traceId": 'a' * 32}
