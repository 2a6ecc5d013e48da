# Overview: Pytest coverage for the billing and outbox CLI commands.

from oms.models import MerchantBillingProfile


def test_billing_init_creates_profile(app, db_session, merchant):
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        "billing", "init", "--merchant-id", str(merchant.id),
        "--state-code", " 27 ", "--gstin", "27abcde1234f1z5",
    ])

    assert result.exit_code == 0, result.output
    assert "Created billing profile" in result.output
    profile = db_session.query(MerchantBillingProfile).filter_by(merchant_id=merchant.id).one()
    assert profile.state_code == "27"
    assert profile.gstin == "27ABCDE1234F1Z5"
    assert profile.invoice_prefix == "INV-"
    assert profile.next_invoice_number == 1


def test_billing_counter_only_moves_forward(app, db_session, merchant, billing_profile):
    runner = app.test_cli_runner()

    ahead = runner.invoke(args=["billing", "init", "--merchant-id", str(merchant.id), "--start-number", "1000"])
    assert ahead.exit_code == 0, ahead.output

    back = runner.invoke(args=["billing", "init", "--merchant-id", str(merchant.id), "--start-number", "5"])
    assert back.exit_code != 0
    assert "below the current counter" in back.output

    db_session.expire_all()
    assert db_session.query(MerchantBillingProfile).one().next_invoice_number == 1000


def test_billing_init_unknown_merchant(app, db_session):
    result = app.test_cli_runner().invoke(args=["billing", "init", "--merchant-id", "999"])

    assert result.exit_code != 0
    assert "not found" in result.output


def test_outbox_commands_with_empty_outbox(app, db_session):
    runner = app.test_cli_runner()

    listed = runner.invoke(args=["outbox", "list"])
    assert "No outbox events." in listed.output

    dispatched = runner.invoke(args=["outbox", "dispatch"])
    assert dispatched.exit_code == 0
    assert "0 done, 0 failed" in dispatched.output
