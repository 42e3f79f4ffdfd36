from decimal import Decimal

from duesledger.models.ledger import Member
from duesledger.services.charges import generate_for_period, generate_range
from duesledger.services.closing import close_period
from duesledger.services.debt import collection_rate, list_member_charges, member_summary, portfolio_overview
from duesledger.services.ledger_store import InMemoryMemberDirectory
from duesledger.services.payments import record_payment


def _generate_and_pay_a(store, directory, make_clock):
    generate_for_period(store, directory, "2025-03", clock=make_clock(2025, 3, 1))
    record_payment(store, store.find_charge("2025-03", "A").id, "50", clock=make_clock(2025, 3, 10))


def test_collection_rate_rounds_to_cents():
    assert collection_rate(Decimal("50"), Decimal("100")) == Decimal("33.33")
    assert collection_rate(Decimal("150"), Decimal("0")) == Decimal("100.00")
    assert collection_rate(Decimal("0"), Decimal("0")) == Decimal("0.00")


def test_collection_rate_only_reads_full_when_nothing_is_outstanding():
    assert collection_rate(Decimal("20000.00"), Decimal("0.50")) == Decimal("99.99")
    assert collection_rate(Decimal("0.01"), Decimal("20000.00")) == Decimal("0.01")
    assert collection_rate(Decimal("20000.00"), Decimal("0.00")) == Decimal("100.00")


def test_collection_rate_stays_between_zero_and_one_hundred():
    amounts = [Decimal("0.00"), Decimal("0.01"), Decimal("0.50"), Decimal("33.33"), Decimal("50.00")]
    amounts += [Decimal("999.99"), Decimal("20000.00"), Decimal("1234567.89")]

    for collected in amounts:
        for outstanding in amounts:
            rate = collection_rate(collected, outstanding)

            assert Decimal("0") <= rate <= Decimal("100")
            assert rate == rate.quantize(Decimal("0.01"))
            if collected + outstanding > 0:
                assert (rate == Decimal("100")) == (outstanding == 0)
                assert (rate == Decimal("0")) == (collected == 0)


def test_portfolio_overview_after_generation_and_one_payment(store, directory, make_clock):
    _generate_and_pay_a(store, directory, make_clock)

    overview = portfolio_overview(store, directory, "2025-03", clock=make_clock(2025, 3, 20))

    assert overview.collected == Decimal("50.00")
    assert overview.outstanding == Decimal("100.00")
    assert overview.collection_rate == Decimal("33.33")
    assert overview.delinquent_members == 2
    assert overview.active_members == 3


def test_nobody_is_delinquent_before_the_grace_day(store, directory, make_clock):
    _generate_and_pay_a(store, directory, make_clock)

    overview = portfolio_overview(store, directory, "2025-03", clock=make_clock(2025, 3, 15))

    assert overview.delinquent_members == 0
    assert overview.outstanding == Decimal("100.00")


def test_overview_of_an_empty_ledger(store, directory, make_clock):
    overview = portfolio_overview(store, directory, "2025-03", clock=make_clock(2025, 3, 20))

    assert overview.collected == Decimal("0.00")
    assert overview.outstanding == Decimal("0.00")
    assert overview.collection_rate == Decimal("0.00")
    assert overview.delinquent_members == 0


def test_fully_paid_ledger_collects_everything(store, directory, make_clock):
    generate_for_period(store, directory, "2025-03", clock=make_clock(2025, 3, 1))
    for charge in store.snapshot_charges(period="2025-03"):
        record_payment(store, charge.id, "50", clock=make_clock(2025, 3, 10))

    overview = portfolio_overview(store, directory, "2025-03", clock=make_clock(2025, 3, 28))

    assert overview.collection_rate == Decimal("100.00")
    assert overview.outstanding == Decimal("0.00")
    assert overview.delinquent_members == 0


def test_inactive_members_are_left_out_of_the_overview(store, directory, make_clock):
    _generate_and_pay_a(store, directory, make_clock)
    without_b = InMemoryMemberDirectory([Member("A"), Member("B", active=False), Member("C")])

    overview = portfolio_overview(store, without_b, "2025-03", clock=make_clock(2025, 3, 20))

    assert overview.active_members == 2
    assert overview.outstanding == Decimal("50.00")
    assert overview.delinquent_members == 1


def test_member_summary_grace_boundary(store, directory, make_clock):
    _generate_and_pay_a(store, directory, make_clock)

    before = member_summary(store, "B", "2025-03", clock=make_clock(2025, 3, 15))
    on_grace_day = member_summary(store, "B", "2025-03", clock=make_clock(2025, 3, 16))

    assert before.total == Decimal("50.00")
    assert before.delinquent is False
    assert on_grace_day.delinquent is True
    assert [charge.period for charge in on_grace_day.items] == ["2025-03"]


def test_paid_member_owes_nothing(store, directory, make_clock):
    _generate_and_pay_a(store, directory, make_clock)

    summary = member_summary(store, "A", "2025-03", clock=make_clock(2025, 3, 20))

    assert summary.total == Decimal("0.00")
    assert summary.delinquent is False
    assert summary.items == ()


def test_member_summary_spans_start_period_through_today(store, directory, make_clock):
    generate_range(store, directory, "2025-01", clock=make_clock(2025, 3, 5))

    full = member_summary(store, "B", "2025-01", clock=make_clock(2025, 3, 5))
    recent = member_summary(store, "B", "2025-02", clock=make_clock(2025, 3, 5))

    assert full.total == Decimal("150.00")
    assert full.delinquent is True
    assert len(full.items) == 3
    assert recent.total == Decimal("100.00")


def test_summary_includes_surcharges_after_closing(store, directory, make_clock):
    _generate_and_pay_a(store, directory, make_clock)
    close_period(store, "2025-03", "treasurer", clock=make_clock(2025, 3, 20))

    summary = member_summary(store, "C", "2025-03", clock=make_clock(2025, 3, 21))
    overview = portfolio_overview(store, directory, "2025-03", clock=make_clock(2025, 3, 21))

    assert summary.total == Decimal("52.50")
    assert overview.outstanding == Decimal("105.00")
    assert overview.collection_rate == Decimal("32.26")


def test_list_member_charges_newest_first(store, directory, make_clock):
    generate_range(store, directory, "2025-01", clock=make_clock(2025, 3, 5))

    assert [charge.period for charge in list_member_charges(store, "C")] == ["2025-03", "2025-02", "2025-01"]
    assert list_member_charges(store, "nobody") == []
