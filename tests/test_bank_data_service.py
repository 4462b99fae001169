try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

try:
    from ._fakes import FakeTrueLayer, make_transaction
except ImportError:  # pragma: no cover
    from _fakes import FakeTrueLayer, make_transaction  # type: ignore

import pytest

from banklink.clients.truelayer import AggregatorAPIError
from banklink.schemas import Account, Balance
from banklink.services.bank_data import BankDataService, is_regular_payment, sort_by_recency


@pytest.fixture()
def truelayer() -> FakeTrueLayer:
    fake = FakeTrueLayer()
    fake.accounts = [
        Account(
            account_id="acc-a",
            account_type="TRANSACTION",
            display_name="Current Account",
            currency="GBP",
            type="current",
        ),
        Account(
            account_id="acc-b",
            account_type="SAVINGS",
            account_name="Rainy Day",
            currency="GBP",
        ),
    ]
    fake.transactions = {
        "acc-a": [
            make_transaction("a1", "2024-03-01T09:00:00Z", -12.5),
            make_transaction("a2", "2024-04-02T09:00:00Z", 2500.0, description="SALARY"),
        ],
        "acc-b": [
            make_transaction("b1", "2024-03-15T09:00:00Z", 40.0),
            make_transaction(
                "b2",
                "2024-04-20T09:00:00+01:00",
                -60.0,
                transaction_category="DIRECT_DEBIT",
            ),
        ],
    }
    fake.balances = {
        "acc-a": Balance(currency="GBP", available=100.0, current=120.0),
        "acc-b": Balance(currency="GBP", current=50.0),
    }
    return fake


@pytest.fixture()
def service(truelayer) -> BankDataService:
    return BankDataService(truelayer)


@pytest.mark.anyio
async def test_all_transactions_are_tagged_and_sorted_newest_first(service) -> None:
    transactions = await service.list_all_transactions("token")

    assert [tx.transaction_id for tx in transactions] == ["b2", "a2", "b1", "a1"]
    assert {tx.transaction_id: tx.account_id for tx in transactions} == {
        "a1": "acc-a",
        "a2": "acc-a",
        "b1": "acc-b",
        "b2": "acc-b",
    }


@pytest.mark.anyio
async def test_one_failing_account_fails_the_whole_listing(service, truelayer) -> None:
    truelayer.failing_transactions.add("acc-b")

    with pytest.raises(AggregatorAPIError):
        await service.list_all_transactions("token")


@pytest.mark.anyio
async def test_single_account_transactions_carry_account_id(service) -> None:
    transactions = await service.list_account_transactions("token", "acc-b")

    assert [tx.account_id for tx in transactions] == ["acc-b", "acc-b"]


@pytest.mark.anyio
async def test_balances_isolate_per_account_failures(service, truelayer) -> None:
    truelayer.failing_balances.add("acc-b")

    summary = await service.list_balances("token")

    assert summary.total == pytest.approx(100.0)
    by_id = {item.account_id: item for item in summary.balances}
    assert by_id["acc-b"].balance is None
    assert by_id["acc-a"].balance.available == 100.0
    assert by_id["acc-a"].type == "current"
    assert by_id["acc-a"].name == "Current Account"
    assert by_id["acc-b"].name == "Rainy Day"


@pytest.mark.anyio
async def test_balance_total_prefers_available_then_current(service) -> None:
    summary = await service.list_balances("token")

    assert summary.total == pytest.approx(150.0)


@pytest.mark.anyio
async def test_income_counts_only_positive_amounts(service) -> None:
    summary = await service.summarise_income("token")

    assert summary.total_income == pytest.approx(2540.0)
    assert [tx.transaction_id for tx in summary.transactions] == ["a2", "b1"]


@pytest.mark.anyio
async def test_income_filters_by_year_and_month(service) -> None:
    april = await service.summarise_income("token", year=2024, month=4)
    other_year = await service.summarise_income("token", year=2023)

    assert april.total_income == pytest.approx(2500.0)
    assert other_year.total_income == 0
    assert other_year.transactions == []


@pytest.mark.anyio
async def test_month_listing_keeps_only_that_month(service) -> None:
    transactions = await service.list_transactions_for_month("token", year=2024, month=3)

    assert [tx.transaction_id for tx in transactions] == ["b1", "a1"]


@pytest.mark.anyio
async def test_regular_payments(service) -> None:
    payments = await service.list_regular_payments("token")

    assert [tx.transaction_id for tx in payments] == ["b2"]


@pytest.mark.anyio
async def test_extend_connection_forwards_consent_flag(service, truelayer) -> None:
    result = await service.extend_connection("token", user_has_reconfirmed_consent=False)

    assert truelayer.extend_calls == [False]
    assert result["status"] == "Succeeded"


@pytest.mark.parametrize(
    "extra",
    [
        {"transaction_category": "STANDING_ORDER"},
        {"transaction_category": "BILL_PAYMENT"},
        {"vrp_id": "vrp-123"},
        {"description": "Variable Recurring Payment to Savings"},
    ],
)
def test_is_regular_payment_recognises_recurring_kinds(extra) -> None:
    assert is_regular_payment(make_transaction("t", "2024-01-01T00:00:00Z", -5.0, **extra))


def test_card_purchase_is_not_regular() -> None:
    transaction = make_transaction(
        "t", "2024-01-01T00:00:00Z", -5.0, transaction_category="PURCHASE"
    )

    assert not is_regular_payment(transaction)


def test_undated_transactions_sort_last() -> None:
    undated = make_transaction("none", None, 1.0)
    dated = make_transaction("dated", "2020-01-01T00:00:00", 1.0)

    assert [tx.transaction_id for tx in sort_by_recency([undated, dated])] == [
        "dated",
        "none",
    ]
