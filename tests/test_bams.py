import pytest

from opsconsole.core.config import settings

WRITES = ("insert", "update", "upsert", "delete")


@pytest.fixture
def accounts(backend):
    backend.seed(
        "bank_accounts",
        {
            "id": "acc-1",
            "account_name": "HDFC Operations",
            "bank_name": "HDFC Bank",
            "account_number": "50100012345678",
            "IFSC": "HDFC0001234",
            "account_type": "CURRENT",
            "balance": 10000,
            "lien_amount": 2000,
            "status": "ACTIVE",
            "account_status": "ACTIVE",
        },
        {
            "id": "acc-2",
            "account_name": "ICICI Settlement",
            "bank_name": "ICICI Bank",
            "account_number": "000401234567",
            "account_type": "SAVINGS",
            "balance": 500,
            "lien_amount": None,
            "status": "ACTIVE",
            "account_status": "ACTIVE",
        },
    )
    backend.seed("subsidiaries", {"id": "sub-1", "firm_name": "Acme Trading Pvt Ltd"})
    return backend


def remote_writes(backend):
    return [c for c in backend.calls if c[0] in WRITES]


def account_payload(**overrides):
    payload = {
        "account_name": "Axis Payroll",
        "bank_name": "Axis Bank",
        "account_number": "917020012345678",
        "ifsc_code": "UTIB0000123",
        "account_type": "savings",
        "balance": 2500,
        "lien_amount": 0,
        "subsidiary_id": "sub-1",
    }
    payload.update(overrides)
    return payload


def test_list_accounts_reports_available_balance(admin_client, accounts):
    response = admin_client.get("/bams/accounts")
    assert response.status_code == 200
    by_id = {a["id"]: a for a in response.json()}
    assert by_id["acc-1"]["available_balance"] == 8000
    assert by_id["acc-2"]["lien_amount"] == 0
    assert by_id["acc-2"]["available_balance"] == 500


def test_create_account_requires_company(admin_client, backend):
    response = admin_client.post("/bams/accounts", json=account_payload(subsidiary_id=None))
    assert response.status_code == 400
    assert response.json()["detail"] == "Please select a company"
    assert response.json()["toast"]["variant"] == "destructive"
    assert not backend.called("insert", "bank_accounts")


@pytest.mark.parametrize("overrides,message", [
    ({"bank_name": "  "}, "Please fill in all required fields"),
    ({"balance": None}, "Please enter the opening balance"),
    ({"balance": -1}, "Balance cannot be negative"),
    ({"lien_amount": -5}, "Lien amount cannot be negative"),
    ({"account_type": "FIXED"}, "Account type must be SAVINGS or CURRENT"),
])
def test_create_account_validation(admin_client, backend, overrides, message):
    response = admin_client.post("/bams/accounts", json=account_payload(**overrides))
    assert response.status_code == 400
    assert response.json()["detail"] == message
    assert remote_writes(backend) == []


def test_create_account_refreshes_cached_list(admin_client, accounts):
    assert len(admin_client.get("/bams/accounts").json()) == 2

    response = admin_client.post("/bams/accounts", json=account_payload())
    assert response.status_code == 200
    created = response.json()["data"]
    assert created["account_type"] == "SAVINGS"
    assert created["account_status"] == "ACTIVE"
    assert any(r["action_type"] == "bank.account_created" for r in accounts.rows("system_action_logs"))

    listed = admin_client.get("/bams/accounts").json()
    assert len(listed) == 3


def test_update_account_negative_balance_from_backend(admin_client, accounts):
    accounts.fail_next("update", "bank_accounts", 'new row for relation "bank_accounts": balance cannot be negative')
    response = admin_client.put("/bams/accounts/acc-1", json=account_payload(subsidiary_id=None))
    assert response.status_code == 400
    body = response.json()
    assert body["detail"] == "Bank account balance cannot be negative."
    assert body["toast"]["title"] == "Invalid Balance"


def test_update_missing_account(admin_client, accounts):
    response = admin_client.put("/bams/accounts/nope", json=account_payload())
    assert response.status_code == 404
    assert response.json()["detail"] == "Bank account not found"


def test_transfer_between_same_account_writes_nothing(admin_client, accounts):
    response = admin_client.post("/bams/transfers", json={
        "from_account_id": "acc-1",
        "to_account_id": "acc-1",
        "amount": 100,
        "transaction_date": "2026-10-01",
    })
    assert response.status_code == 400
    assert response.json()["detail"] == "From and To accounts must be different"
    assert remote_writes(accounts) == []


def test_transfer_respects_lien(admin_client, accounts):
    response = admin_client.post("/bams/transfers", json={
        "from_account_id": "acc-1",
        "to_account_id": "acc-2",
        "amount": 9000,
        "transaction_date": "2026-10-01",
    })
    assert response.status_code == 400
    assert "Available: Rs. 8,000.00" in response.json()["detail"]
    assert not accounts.called("insert", "bank_transactions")


def test_transfer_links_both_legs(admin_client, accounts):
    response = admin_client.post("/bams/transfers", json={
        "from_account_id": "acc-1",
        "to_account_id": "acc-2",
        "amount": 1500,
        "transaction_date": "2026-10-01",
    })
    assert response.status_code == 200
    result = response.json()["data"]

    rows = {r["id"]: r for r in accounts.rows("bank_transactions")}
    out_leg = rows[result["transfer_out_id"]]
    in_leg = rows[result["transfer_in_id"]]
    assert out_leg["transaction_type"] == "TRANSFER_OUT"
    assert out_leg["bank_account_id"] == "acc-1"
    assert in_leg["transaction_type"] == "TRANSFER_IN"
    assert in_leg["bank_account_id"] == "acc-2"
    assert in_leg["related_transaction_id"] == out_leg["id"]
    assert out_leg["related_transaction_id"] == in_leg["id"]
    assert out_leg["description"] == "Transfer to ICICI Settlement"


def test_expense_needs_matching_category(admin_client, accounts):
    payload = {
        "bank_account_id": "acc-1",
        "transaction_type": "EXPENSE",
        "amount": 250,
        "category": "interest_income",
        "description": "Quarterly charges",
        "transaction_date": "2026-10-02",
    }
    response = admin_client.post("/bams/transactions", json=payload)
    assert response.status_code == 400
    assert response.json()["detail"] == "Category is not valid for expense entries"

    payload["category"] = "bank_charges"
    response = admin_client.post("/bams/transactions", json=payload)
    assert response.status_code == 200
    row = accounts.rows("bank_transactions")[0]
    assert row["category"] == "Finance, Banking & Compliance > Bank charges"
    assert row["description"] == "Quarterly charges"


def test_transaction_requires_description(admin_client, accounts):
    response = admin_client.post("/bams/transactions", json={
        "bank_account_id": "acc-2",
        "transaction_type": "INCOME",
        "amount": 100,
        "category": "other_income",
        "description": "   ",
        "transaction_date": "2026-10-02",
    })
    assert response.status_code == 400
    assert response.json()["detail"] == "Please fill in all required fields including description"


def test_expense_over_available_balance(admin_client, accounts):
    response = admin_client.post("/bams/transactions", json={
        "bank_account_id": "acc-2",
        "transaction_type": "EXPENSE",
        "amount": 750,
        "category": "gst",
        "description": "GST payment",
        "transaction_date": "2026-10-02",
    })
    assert response.status_code == 400
    assert response.json()["toast"]["title"] == "Insufficient balance"


def test_close_account_with_settlement(admin_client, accounts):
    accounts.fail_next("update", "sales_payment_methods", "permission denied for table sales_payment_methods")
    response = admin_client.post(
        "/bams/accounts/acc-1/close",
        data={"closure_reason": "Branch shut down", "transfer_balance": "true", "settlement_bank_id": "acc-2"},
        files={"documents": ("closure letter.pdf", b"%PDF-1.4 letter", "application/pdf")},
    )
    assert response.status_code == 200, response.text
    result = response.json()["data"]
    assert result["final_balance"] == 0
    assert result["deleted"] is False
    assert result["documents"][0].startswith("memory://kyc-documents/bank-closures/")

    legs = accounts.rows("bank_transactions")
    assert [(l["transaction_type"], l["bank_account_id"], l["amount"]) for l in legs] == [
        ("TRANSFER_OUT", "acc-1", 10000),
        ("TRANSFER_IN", "acc-2", 10000),
    ]

    closed = accounts.rows("closed_bank_accounts")
    assert len(closed) == 1
    assert closed[0]["closure_reason"] == "Branch shut down"
    assert closed[0]["final_balance"] == 0

    account = next(a for a in accounts.rows("bank_accounts") if a["id"] == "acc-1")
    assert account["account_status"] == "CLOSED"
    assert account["balance"] == 0
    assert accounts.called("update", "purchase_payment_methods")


def test_close_account_needs_settlement_target(admin_client, accounts):
    response = admin_client.post(
        "/bams/accounts/acc-1/close",
        data={"closure_reason": "Dormant", "transfer_balance": "true"},
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Please select a bank account for balance settlement"
    assert remote_writes(accounts) == []


def test_close_account_manual_delete_disabled(admin_client, accounts):
    response = admin_client.post(
        "/bams/accounts/acc-2/close",
        data={"closure_reason": "Duplicate entry", "manual_delete": "true"},
    )
    assert response.status_code == 400
    assert not accounts.called("delete", "bank_accounts")


def test_close_account_twice(admin_client, accounts):
    first = admin_client.post("/bams/accounts/acc-2/close", data={"closure_reason": "Dormant"})
    assert first.status_code == 200
    second = admin_client.post("/bams/accounts/acc-2/close", data={"closure_reason": "Dormant"})
    assert second.status_code == 400
    assert second.json()["detail"] == "Bank account is already closed"


def test_import_accounts_from_csv(admin_client, accounts):
    content = (
        "account_name,bank_name,account_number,ifsc_code,balance,account_type,company_name\n"
        "Kotak Ops,Kotak Bank,1234509876,KKBK0000123,15000,current,Acme Trading Pvt Ltd\n"
        "Bad Row,SBI,,SBIN0000001,abc,FIXED,Unknown Corp\n"
    ).encode("utf-8")
    response = admin_client.post("/bams/accounts/import", files={"file": ("accounts.csv", content, "text/csv")})
    assert response.status_code == 200
    result = response.json()["data"]
    assert result["imported"] == 1
    assert "Row 3: Account number is required" in result["errors"]
    assert "Row 3: Valid balance is required" in result["errors"]
    assert 'Row 3: Company "Unknown Corp" not found' in result["errors"]
    assert "Row 3: Account type must be SAVINGS or CURRENT" in result["errors"]

    imported = next(a for a in accounts.rows("bank_accounts") if a["account_name"] == "Kotak Ops")
    assert imported["status"] == "PENDING_APPROVAL"
    assert imported["subsidiary_id"] == "sub-1"
    assert imported["account_type"] == "CURRENT"


def test_import_rejects_missing_columns(admin_client, accounts):
    content = b"account_name,bank_name\nKotak Ops,Kotak Bank\n"
    response = admin_client.post("/bams/accounts/import", files={"file": ("accounts.csv", content, "text/csv")})
    assert response.status_code == 400
    assert response.json()["detail"].startswith("Missing required columns: account_number")


def test_import_rejects_non_csv(admin_client, accounts):
    response = admin_client.post("/bams/accounts/import", files={"file": ("accounts.xlsx", b"PK", "application/octet-stream")})
    assert response.status_code == 400
    assert not accounts.called("insert", "bank_accounts")


def test_statement_pdf(admin_client, accounts):
    accounts.seed(
        "bank_transactions",
        {"bank_account_id": "acc-1", "transaction_type": "INCOME", "amount": 1200, "description": "Interest & refunds",
         "transaction_date": "2026-09-10"},
        {"bank_account_id": "acc-1", "transaction_type": "EXPENSE", "amount": 200, "description": "Charges",
         "transaction_date": "2026-09-12"},
    )
    response = admin_client.get("/bams/accounts/acc-1/statement", params={"start": "2026-09-01", "end": "2026-09-30"})
    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert "Statement_5678_2026-09-30.pdf" in response.headers["content-disposition"]
    assert response.content.startswith(b"%PDF")


def test_transactions_filtered_by_date(admin_client, accounts):
    accounts.seed(
        "bank_transactions",
        {"bank_account_id": "acc-1", "transaction_type": "INCOME", "amount": 10, "transaction_date": "2026-08-31"},
        {"bank_account_id": "acc-1", "transaction_type": "INCOME", "amount": 20, "transaction_date": "2026-09-15"},
    )
    response = admin_client.get("/bams/accounts/acc-1/transactions", params={"start": "2026-09-01"})
    assert [r["amount"] for r in response.json()] == [20]


def test_categories(clerk_client):
    response = clerk_client.get("/bams/categories")
    assert response.status_code == 200
    body = response.json()
    assert [g["value"] for g in body["INCOME"]] == ["other_income"]
    assert len(body["EXPENSE"]) == 9


def close_acc_2(accounts):
    acc_2 = next(a for a in accounts.rows("bank_accounts") if a["id"] == "acc-2")
    acc_2["account_status"] = "CLOSED"


def test_settlement_into_closed_account_is_refused(admin_client, accounts):
    close_acc_2(accounts)
    response = admin_client.post(
        "/bams/accounts/acc-1/close",
        data={"closure_reason": "Branch shut down", "transfer_balance": "true", "settlement_bank_id": "acc-2"},
        files={"documents": ("closure.pdf", b"%PDF-1.4", "application/pdf")},
    )
    assert response.status_code == 400
    assert response.json()["toast"]["title"] == "Account closed"
    assert remote_writes(accounts) == []
    assert "kyc-documents" not in accounts.storage


def test_settlement_into_unknown_account_is_refused(admin_client, accounts):
    response = admin_client.post(
        "/bams/accounts/acc-1/close",
        data={"closure_reason": "Branch shut down", "transfer_balance": "true", "settlement_bank_id": "does-not-exist"},
    )
    assert response.status_code == 404
    assert remote_writes(accounts) == []


def test_transfer_into_closed_account_is_refused(admin_client, accounts):
    close_acc_2(accounts)
    response = admin_client.post("/bams/transfers", json={
        "from_account_id": "acc-1",
        "to_account_id": "acc-2",
        "amount": 100,
        "transaction_date": "2026-10-01",
    })
    assert response.status_code == 400
    assert response.json()["detail"] == "ICICI Settlement is closed and cannot take new transactions"
    assert remote_writes(accounts) == []


def test_income_on_closed_account_is_refused(admin_client, accounts):
    close_acc_2(accounts)
    response = admin_client.post("/bams/transactions", json={
        "bank_account_id": "acc-2",
        "transaction_type": "INCOME",
        "amount": 100,
        "category": "interest_income",
        "description": "Interest",
        "transaction_date": "2026-10-02",
    })
    assert response.status_code == 400
    assert not accounts.called("insert", "bank_transactions")


def test_transfer_in_failure_keeps_transfer_out(admin_client, accounts):
    accounts.fail_next("insert", "bank_transactions", "connection reset by peer", skip=1)
    response = admin_client.post("/bams/transfers", json={
        "from_account_id": "acc-1",
        "to_account_id": "acc-2",
        "amount": 1500,
        "transaction_date": "2026-10-01",
    })
    assert response.status_code == 502
    assert response.json()["toast"]["variant"] == "destructive"

    legs = accounts.rows("bank_transactions")
    assert [l["transaction_type"] for l in legs] == ["TRANSFER_OUT"]
    assert not accounts.called("update", "bank_transactions")


def test_closure_transfer_in_failure_keeps_transfer_out(admin_client, accounts):
    accounts.fail_next("insert", "bank_transactions", "connection reset by peer", skip=1)
    response = admin_client.post(
        "/bams/accounts/acc-1/close",
        data={"closure_reason": "Branch shut down", "transfer_balance": "true", "settlement_bank_id": "acc-2"},
    )
    assert response.status_code == 502
    assert response.json()["detail"] == "Failed to create transfer in transaction: connection reset by peer"

    legs = accounts.rows("bank_transactions")
    assert [(l["transaction_type"], l["bank_account_id"]) for l in legs] == [("TRANSFER_OUT", "acc-1")]
    assert accounts.rows("closed_bank_accounts") == []
    account = next(a for a in accounts.rows("bank_accounts") if a["id"] == "acc-1")
    assert account["account_status"] == "ACTIVE"


def test_manual_delete_when_enabled(admin_client, accounts, monkeypatch):
    monkeypatch.setattr(settings, "ALLOW_MANUAL_ACCOUNT_DELETE", True)
    response = admin_client.post(
        "/bams/accounts/acc-2/close",
        data={"closure_reason": "Duplicate entry", "manual_delete": "true"},
    )
    assert response.status_code == 200
    assert response.json()["data"]["deleted"] is True
    assert response.json()["toast"]["description"] == "Bank account has been permanently deleted"

    assert [a["id"] for a in accounts.rows("bank_accounts")] == ["acc-1"]
    assert accounts.rows("closed_bank_accounts") == []
    assert not accounts.called("insert", "closed_bank_accounts")
    assert not accounts.called("update", "bank_accounts")
