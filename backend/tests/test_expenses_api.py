import unittest
from datetime import date, timedelta

from fastapi.testclient import TestClient

from backend.config import Settings
from backend.main import create_app


class ExpensesApiTests(unittest.TestCase):
    def setUp(self) -> None:
        app = create_app(Settings(database_url="sqlite://", jwt_secret="test-secret"))
        self.client = TestClient(app)
        self.client.__enter__()
        self.addCleanup(self.client.__exit__, None, None, None)
        self.alice = self.login_as("Alice", "alice@example.com")
        self.bob = self.login_as("Bob", "bob@example.com")
        self.checking = self.create_account(self.alice, name="Checking", type="checking")

    def login_as(self, name: str, email: str) -> dict:
        token = self.client.post(
            "/api/auth/register",
            json={"name": name, "email": email, "password": "secret1"},
        ).json()["token"]
        return {"Authorization": f"Bearer {token}"}

    def create_account(self, headers: dict, **fields) -> int:
        response = self.client.post("/api/accounts", json=fields, headers=headers)
        self.assertEqual(response.status_code, 201)
        return response.json()["id"]

    def balance_of(self, account_id: int, headers: dict | None = None) -> float:
        rows = self.client.get("/api/accounts", headers=headers or self.alice).json()
        return next(row["balance"] for row in rows if row["id"] == account_id)

    def create_expense(self, headers: dict | None = None, **fields):
        payload = {
            "description": "Groceries",
            "amount": 50,
            "category": "food",
            "account": self.checking,
        }
        payload.update(fields)
        return self.client.post("/api/expenses", json=payload, headers=headers or self.alice)

    def test_create_debits_account(self) -> None:
        response = self.create_expense()

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["amount"], 50)
        self.assertEqual(body["category"], "food")
        self.assertEqual(body["account"], {"id": self.checking, "name": "Checking", "type": "checking"})
        self.assertEqual(body["date"], date.today().isoformat())
        self.assertEqual(self.balance_of(self.checking), -50)

    def test_create_subtracts_from_opening_balance(self) -> None:
        savings = self.create_account(self.alice, name="Savings", type="savings", balance=200)

        self.create_expense(amount=30.25, account=savings)

        self.assertEqual(self.balance_of(savings), 169.75)

    def test_create_against_other_users_account_is_not_found(self) -> None:
        response = self.create_expense(headers=self.bob)

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["message"], "Account not found")
        self.assertEqual(self.balance_of(self.checking), 0)
        listing = self.client.get("/api/expenses", headers=self.bob).json()
        self.assertEqual(listing["expenses"], [])

    def test_create_rejects_invalid_fields(self) -> None:
        response = self.create_expense(description=" ", amount=-5, category="rent")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            {error["field"] for error in response.json()["errors"]},
            {"description", "amount", "category"},
        )
        self.assertEqual(self.balance_of(self.checking), 0)

    def test_create_rejects_non_numeric_amount(self) -> None:
        response = self.create_expense(amount="fifty")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["errors"][0]["field"], "amount")

    def test_delete_credits_account(self) -> None:
        expense_id = self.create_expense(amount=80).json()["id"]

        response = self.client.delete(f"/api/expenses/{expense_id}", headers=self.alice)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"message": "Expense deleted"})
        self.assertEqual(self.balance_of(self.checking), 0)

    def test_delete_twice_is_not_found_and_credits_once(self) -> None:
        expense_id = self.create_expense(amount=20).json()["id"]
        self.client.delete(f"/api/expenses/{expense_id}", headers=self.alice)

        again = self.client.delete(f"/api/expenses/{expense_id}", headers=self.alice)

        self.assertEqual(again.status_code, 404)
        self.assertEqual(again.json()["message"], "Expense not found")
        self.assertEqual(self.balance_of(self.checking), 0)

    def test_delete_other_users_expense_is_not_found(self) -> None:
        expense_id = self.create_expense().json()["id"]

        response = self.client.delete(f"/api/expenses/{expense_id}", headers=self.bob)

        self.assertEqual(response.status_code, 404)
        self.assertEqual(self.balance_of(self.checking), -50)

    def test_expense_survives_account_deletion(self) -> None:
        expense_id = self.create_expense().json()["id"]
        self.client.delete(f"/api/accounts/{self.checking}", headers=self.alice)

        listing = self.client.get("/api/expenses", headers=self.alice).json()
        self.assertEqual(listing["expenses"][0]["id"], expense_id)
        self.assertIsNone(listing["expenses"][0]["account"])

        response = self.client.delete(f"/api/expenses/{expense_id}", headers=self.alice)
        self.assertEqual(response.status_code, 200)

    def test_orphaned_expense_does_not_attach_to_replacement_account(self) -> None:
        expense_id = self.create_expense(amount=50).json()["id"]
        self.client.delete(f"/api/accounts/{self.checking}", headers=self.alice)
        replacement = self.create_account(self.alice, name="New", type="cash")

        self.assertNotEqual(replacement, self.checking)
        listing = self.client.get("/api/expenses", headers=self.alice).json()
        self.assertIsNone(listing["expenses"][0]["account"])

        response = self.client.delete(f"/api/expenses/{expense_id}", headers=self.alice)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.balance_of(replacement), 0)

    def test_deleted_expense_id_is_not_reused(self) -> None:
        first = self.create_expense(amount=20).json()["id"]
        self.client.delete(f"/api/expenses/{first}", headers=self.alice)
        second = self.create_expense(amount=35).json()["id"]

        again = self.client.delete(f"/api/expenses/{first}", headers=self.alice)

        self.assertNotEqual(first, second)
        self.assertEqual(again.status_code, 404)
        self.assertEqual(self.balance_of(self.checking), -35)

    def test_create_rejects_boolean_account(self) -> None:
        response = self.create_expense(account=True)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["errors"][0]["field"], "account")
        self.assertEqual(self.balance_of(self.checking), 0)

    def test_list_rejects_page_beyond_bound(self) -> None:
        response = self.client.get(
            "/api/expenses", params={"page": "100000000000000000000"}, headers=self.alice
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["errors"][0]["field"], "page")

    def test_list_paginates_newest_first(self) -> None:
        start = date(2024, 1, 1)
        for offset in range(15):
            self.create_expense(
                description=f"Expense {offset}",
                amount=1,
                date=(start + timedelta(days=offset)).isoformat(),
            )

        first = self.client.get("/api/expenses", params={"limit": 10}, headers=self.alice).json()
        second = self.client.get(
            "/api/expenses", params={"page": 2, "limit": 10}, headers=self.alice
        ).json()

        self.assertEqual(len(first["expenses"]), 10)
        self.assertEqual(first["expenses"][0]["description"], "Expense 14")
        self.assertEqual(len(second["expenses"]), 5)
        self.assertEqual(second["totalPages"], 2)
        self.assertEqual(second["currentPage"], 2)
        self.assertEqual(second["expenses"][-1]["description"], "Expense 0")

    def test_list_filters_by_category_and_dates(self) -> None:
        self.create_expense(description="Bus", category="transport", date="2024-03-01")
        self.create_expense(description="Dinner", category="food", date="2024-03-05")
        self.create_expense(description="Snack", category="food", date="2024-04-10")

        by_category = self.client.get(
            "/api/expenses", params={"category": "food"}, headers=self.alice
        ).json()
        by_dates = self.client.get(
            "/api/expenses",
            params={"startDate": "2024-03-01", "endDate": "2024-03-05"},
            headers=self.alice,
        ).json()

        self.assertEqual([row["description"] for row in by_category["expenses"]], ["Snack", "Dinner"])
        self.assertEqual([row["description"] for row in by_dates["expenses"]], ["Dinner", "Bus"])
        self.assertEqual(by_dates["totalPages"], 1)

    def test_list_rejects_inverted_date_range(self) -> None:
        response = self.client.get(
            "/api/expenses",
            params={"startDate": "2024-05-01", "endDate": "2024-04-01"},
            headers=self.alice,
        )

        self.assertEqual(response.status_code, 400)

    def test_list_requires_token(self) -> None:
        self.assertEqual(self.client.get("/api/expenses").status_code, 401)

    def test_update_amount_reconciles_balance(self) -> None:
        expense_id = self.create_expense(amount=30).json()["id"]

        response = self.client.put(
            f"/api/expenses/{expense_id}", json={"amount": 45}, headers=self.alice
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["amount"], 45)
        self.assertEqual(self.balance_of(self.checking), -45)

    def test_update_moving_account_reconciles_both_balances(self) -> None:
        wallet = self.create_account(self.alice, name="Wallet", type="cash", balance=100)
        expense_id = self.create_expense(amount=30).json()["id"]

        response = self.client.put(
            f"/api/expenses/{expense_id}", json={"account": wallet}, headers=self.alice
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["account"]["name"], "Wallet")
        self.assertEqual(self.balance_of(self.checking), 0)
        self.assertEqual(self.balance_of(wallet), 70)

    def test_update_description_leaves_balance(self) -> None:
        expense_id = self.create_expense(amount=30).json()["id"]

        response = self.client.put(
            f"/api/expenses/{expense_id}", json={"description": "Market"}, headers=self.alice
        )

        self.assertEqual(response.json()["description"], "Market")
        self.assertEqual(self.balance_of(self.checking), -30)

    def test_update_to_other_users_account_is_not_found(self) -> None:
        bobs_account = self.create_account(self.bob, name="Bob", type="cash")
        expense_id = self.create_expense(amount=30).json()["id"]

        response = self.client.put(
            f"/api/expenses/{expense_id}", json={"account": bobs_account}, headers=self.alice
        )

        self.assertEqual(response.status_code, 404)
        self.assertEqual(self.balance_of(self.checking), -30)
        self.assertEqual(self.balance_of(bobs_account, self.bob), 0)

    def test_update_rejects_invalid_category(self) -> None:
        expense_id = self.create_expense().json()["id"]

        response = self.client.put(
            f"/api/expenses/{expense_id}", json={"category": "rent"}, headers=self.alice
        )

        self.assertEqual(response.status_code, 400)

    def test_update_missing_expense_is_not_found(self) -> None:
        response = self.client.put("/api/expenses/999", json={"amount": 1}, headers=self.alice)

        self.assertEqual(response.status_code, 404)


class ExpenseAnalyticsApiTests(unittest.TestCase):
    def setUp(self) -> None:
        app = create_app(Settings(database_url="sqlite://", jwt_secret="test-secret"))
        self.client = TestClient(app)
        self.client.__enter__()
        self.addCleanup(self.client.__exit__, None, None, None)
        token = self.client.post(
            "/api/auth/register",
            json={"name": "Alice", "email": "alice@example.com", "password": "secret1"},
        ).json()["token"]
        self.headers = {"Authorization": f"Bearer {token}"}
        self.account = self.client.post(
            "/api/accounts", json={"name": "Checking", "type": "checking"}, headers=self.headers
        ).json()["id"]

    def add(self, amount: float, category: str, on: str) -> None:
        self.client.post(
            "/api/expenses",
            json={
                "description": category,
                "amount": amount,
                "category": category,
                "account": self.account,
                "date": on,
            },
            headers=self.headers,
        )

    def test_no_expenses_totals_zero(self) -> None:
        response = self.client.get("/api/expenses/analytics", headers=self.headers)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"categoryBreakdown": [], "totalSpent": 0})

    def test_groups_by_category_sorted_by_total(self) -> None:
        self.add(50, "food", "2024-05-01")
        self.add(25, "food", "2024-05-03")
        self.add(10, "transport", "2024-05-02")

        body = self.client.get("/api/expenses/analytics", headers=self.headers).json()

        self.assertEqual(body["totalSpent"], 85)
        self.assertEqual(
            [(row["category"], row["total"], row["count"]) for row in body["categoryBreakdown"]],
            [("food", 75, 2), ("transport", 10, 1)],
        )
        self.assertEqual(body["categoryBreakdown"][0]["percentage"], 88.24)

    def test_date_range_limits_aggregation(self) -> None:
        self.add(50, "food", "2024-05-01")
        self.add(10, "transport", "2024-06-02")

        body = self.client.get(
            "/api/expenses/analytics",
            params={"startDate": "2024-06-01", "endDate": "2024-06-30"},
            headers=self.headers,
        ).json()

        self.assertEqual(body["totalSpent"], 10)
        self.assertEqual([row["category"] for row in body["categoryBreakdown"]], ["transport"])

    def test_range_without_matches_totals_zero(self) -> None:
        self.add(50, "food", "2024-05-01")

        body = self.client.get(
            "/api/expenses/analytics",
            params={"startDate": "2025-01-01"},
            headers=self.headers,
        ).json()

        self.assertEqual(body, {"categoryBreakdown": [], "totalSpent": 0})


if __name__ == "__main__":
    unittest.main()
