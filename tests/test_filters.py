from datetime import date

from app.models.enums import TicketStatus
from app.models.records import ReportPart
from app.models.schemas import ReportFilters
from app.reporting.filters import FilterEngine, apply_filters, log_date, matches_date
from tests.factories import snapshot, ticket, ticket_machine, work_log


def test_empty_filters_return_input_unchanged(sample_data):
    assert apply_filters(sample_data, None) is sample_data
    assert apply_filters(sample_data, ReportFilters()) is sample_data


def test_matches_date_is_inclusive_whole_days():
    start, end = date(2024, 3, 1), date(2024, 3, 5)
    assert matches_date("2024-03-01T00:00:00+00:00", start, end)
    assert matches_date("2024-03-05T23:59:59+00:00", start, end)
    assert not matches_date("2024-03-06T00:00:00+00:00", start, end)
    assert not matches_date(None, start, end)
    assert matches_date(None, None, None)


def test_ticket_date_and_status_filters(sample_data):
    filters = ReportFilters(
        start_date=date(2024, 3, 1),
        end_date=date(2024, 3, 10),
        statuses=[TicketStatus.CLOSED],
    )
    filtered = apply_filters(sample_data, filters)
    assert [t.id for t in filtered.tickets] == ["t1", "t4"]


def test_customer_filter_narrows_every_collection(sample_data):
    filtered = apply_filters(sample_data, ReportFilters(customer_ids=["c2"]))
    assert [t.id for t in filtered.tickets] == ["t4"]
    assert [l.id for l in filtered.work_logs] == ["w3"]
    assert [c.id for c in filtered.customers] == ["c2"]
    assert [m.id for m in filtered.machines] == ["m3"]


def test_technician_filter(sample_data):
    filtered = apply_filters(sample_data, ReportFilters(technician_ids=["bob"]))
    assert [t.id for t in filtered.tickets] == ["t2"]
    assert [l.id for l in filtered.work_logs] == ["w2"]
    assert [t.id for t in filtered.technicians] == ["bob"]


def test_part_name_or_category_match(sample_data):
    by_category = apply_filters(sample_data, ReportFilters(part_categories=["Grinding"]))
    assert [l.id for l in by_category.work_logs] == ["w2"]
    assert [p.name for p in by_category.parts] == ["Burr"]

    either = apply_filters(sample_data, ReportFilters(part_names=["Gasket"], part_categories=["Grinding"]))
    assert sorted(l.id for l in either.work_logs) == ["w1", "w2"]


def test_part_name_filter_does_not_match_everything():
    engine = FilterEngine(ReportFilters(part_names=["Gasket"]))
    assert engine.part_matches("Gasket", "Seals")
    assert not engine.part_matches("Burr", "Grinding")


def test_part_filter_drops_logs_without_parts(sample_data):
    filtered = apply_filters(sample_data, ReportFilters(part_names=["Gasket"]))
    assert [l.id for l in filtered.work_logs] == ["w1"]


def test_log_date_fallbacks():
    parent = ticket(created_at="2024-02-01T00:00:00+00:00")
    assert log_date(work_log(arrival_time="2024-03-01T00:00:00+00:00"), parent) == "2024-03-01T00:00:00+00:00"
    assert log_date(work_log(departure_time="2024-03-02T00:00:00+00:00"), parent) == "2024-03-02T00:00:00+00:00"
    assert log_date(work_log(), parent) == "2024-02-01T00:00:00+00:00"
    assert log_date(work_log(), None) is None


def test_log_kept_when_its_ticket_is_outside_the_range():
    data = snapshot(
        tickets=[ticket("t1", created_at="2024-02-20T00:00:00+00:00")],
        work_logs=[work_log("w1", "t1", arrival_time="2024-03-02T09:00:00+00:00")],
    )
    filtered = apply_filters(data, ReportFilters(start_date=date(2024, 3, 1)))
    assert filtered.tickets == ()
    assert [l.id for l in filtered.work_logs] == ["w1"]


def test_log_customer_from_ticket_when_machine_unknown():
    data = snapshot(
        tickets=[ticket("t1", machines=[ticket_machine("m9", "c7")])],
        work_logs=[work_log("w1", "t1", "m9")],
    )
    filtered = apply_filters(data, ReportFilters(customer_ids=["c7"]))
    assert [l.id for l in filtered.work_logs] == ["w1"]


def test_filtering_does_not_mutate_input(sample_data):
    ticket_ids = [t.id for t in sample_data.tickets]
    log_ids = [l.id for l in sample_data.work_logs]
    apply_filters(sample_data, ReportFilters(customer_ids=["c1"], part_names=["Pump"]))
    assert [t.id for t in sample_data.tickets] == ticket_ids
    assert [l.id for l in sample_data.work_logs] == log_ids


def test_cache_key_ignores_list_order():
    a = ReportFilters(customer_ids=["c1", "c2"], statuses=[TicketStatus.OPEN, TicketStatus.CLOSED])
    b = ReportFilters(customer_ids=["c2", "c1"], statuses=[TicketStatus.CLOSED, TicketStatus.OPEN])
    assert a.cache_key() == b.cache_key()
    assert ReportFilters().cache_key() == "all"
    assert a.cache_key() != ReportFilters(customer_ids=["c1"]).cache_key()


def test_part_record_without_category():
    engine = FilterEngine(ReportFilters(part_categories=["Seals"]))
    data = snapshot(parts=[ReportPart(id="p1", name="Misc")])
    assert engine.apply(data).parts == ()
