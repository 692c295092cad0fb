from datetime import date

import pytest
from conftest import make_line

import main
from sales_analytics import settings
from sales_analytics.errors import InvalidReportRequest
from sales_analytics.pipelines.bills import BillQuery
from sales_analytics.store import InMemoryStore


def _request(argv):
    args = main.parse_args(argv)
    pipeline_cls, make_request = main.REPORT_REGISTRY[args.report]
    return pipeline_cls, make_request(args)


def test_bill_report_is_reachable_from_the_command_line():
    store = InMemoryStore({
        settings.SALE_DETAILS_TABLE: [
            make_line("42", "2024-03-30T18:40:00", "Rice 1kg", net_sale_amount=100.0),
            make_line("42", "2024-03-29T10:00:00", "Yesterday's bill 42", net_sale_amount=7.0),
        ]
    })

    pipeline_cls, request = _request(["bill", "--bill-no", "42", "--date", "2024-03-30"])
    result = pipeline_cls(store).run(request)

    assert [r.product_name for r in result.rows] == ["Rice 1kg"]


def test_bill_report_defaults_to_today(monkeypatch):
    monkeypatch.setattr(main, "local_today", lambda: date(2024, 3, 30))

    _, request = _request(["bill", "--bill-no", "42"])

    assert request == BillQuery("42", date(2024, 3, 30))


def test_bill_report_needs_a_bill_number():
    pipeline_cls, request = _request(["bill"])

    with pytest.raises(InvalidReportRequest):
        pipeline_cls(InMemoryStore()).run(request)


def test_every_report_builds_its_request():
    for report in main.REPORT_REGISTRY:
        pipeline_cls, _ = _request([report, "--bill-no", "1"])
        assert pipeline_cls(InMemoryStore()).report_type
